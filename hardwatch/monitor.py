"""
monitor.py — File-system event source for hardwatch.

Uses the ``watchdog`` library to watch individual files for changes and
converts raw events into ``EventRecord`` objects that the reconciliation
loop pulls with a blocking :meth:`WatchSession.receive`.

watchdog watches directories, so every registered file gets a
non-recursive watch on the directory holding its entry and, when the path
is a symlink, on the directory holding the file it resolves to.  Each of
those directories is also watched from its own parent so that a rename or
removal of the directory is noticed.  Deliveries for unregistered siblings
are dropped here and deliveries on a resolved path are reported under the
registered path.

Public API
----------
WatchSession.add_watch(path, mask)
    Register a file for change notification.

WatchSession.start() / WatchSession.close()
    Begin and end the session.

WatchSession.receive()
    Block until the next EventRecord; raises EventSourceError on a terminal
    error.
"""

from __future__ import annotations

import itertools
import logging
import os
import queue
from typing import Dict, Iterator, Set, Union

from watchdog.events import (
    DirDeletedEvent,
    DirMovedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from hardwatch.config import absolute_path
from hardwatch.events import ChangeKind, EventRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mapping watchdog event types → change kinds.  watchdog reports IN_ATTRIB
# as a modification, so both bits are set.  Moves are handled separately.
# ---------------------------------------------------------------------------
_EVENT_MAP = {
    FileCreatedEvent: ChangeKind.CREATE,
    FileModifiedEvent: ChangeKind.MODIFY | ChangeKind.ATTRIB,
    FileDeletedEvent: ChangeKind.DELETE_SELF,
    FileClosedEvent: ChangeKind.CLOSE_WRITE,
}


class EventSourceError(Exception):
    """The notification mechanism failed; the session is unusable."""


def _norm(path: Union[str, bytes]) -> str:
    return os.path.normpath(os.fsdecode(path))


class _SessionHandler(FileSystemEventHandler):
    """Translates watchdog events into records on the session queue."""

    def __init__(self, session: WatchSession) -> None:
        super().__init__()
        self._session = session

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            for record in self._session._translate(event):
                self._session._queue.put(record)
        except Exception as exc:
            logger.exception("Failed to translate event: %s", event)
            self._session._queue.put(EventSourceError(f"event translation failed: {exc}"))


class WatchSession:
    """One event-source handle bound to one reconciliation loop run.

    Records and terminal errors share a single queue, so :meth:`receive`
    wakes for whichever arrives first.
    """

    def __init__(self) -> None:
        self._observer = Observer()
        self._observer.daemon = True
        self._handler = _SessionHandler(self)
        self._queue: "queue.Queue[Union[EventRecord, EventSourceError]]" = queue.Queue()
        # registered path -> change kinds requested for it
        self._masks: Dict[str, ChangeKind] = {}
        # path as watchdog reports it -> registered paths it stands for
        self._aliases: Dict[str, Set[str]] = {}
        # directories holding a watched entry
        self._dirs: Set[str] = set()
        self._scheduled: Set[str] = set()
        self._tokens = itertools.count(1)
        self._started = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_watch(self, path: str, mask: ChangeKind) -> None:
        """Register *path* for the change kinds in *mask*.

        The file itself may be missing; its creation is then reported as a
        ``CREATE`` record.  If *path* is a symlink, changes to the file it
        points at are reported under *path* as well.

        Raises:
            EventSourceError: if a directory on the way to *path* does not
                exist or cannot be watched.
        """
        path = absolute_path(path)
        self._masks[path] = self._masks.get(path, ChangeKind(0)) | mask

        # The entry itself, with its directory resolved as the kernel would.
        entry = os.path.join(os.path.realpath(os.path.dirname(path)), os.path.basename(path))
        if not os.path.isdir(os.path.dirname(entry)):
            raise EventSourceError(f"cannot watch {path}: no such directory {os.path.dirname(entry)}")
        self._alias(entry, path)

        resolved = os.path.realpath(path)
        if resolved != entry:
            if os.path.isdir(os.path.dirname(resolved)):
                self._alias(resolved, path)
            else:
                logger.warning("%s points into missing directory %s", path, os.path.dirname(resolved))

        if not os.path.exists(path):
            logger.warning("%s does not exist yet; waiting for it to appear", path)

    def _alias(self, observed: str, path: str) -> None:
        self._aliases.setdefault(observed, set()).add(path)
        self._watch_dir(os.path.dirname(observed))

    def _watch_dir(self, directory: str) -> None:
        if directory in self._dirs:
            return
        self._dirs.add(directory)
        self._schedule(directory)
        # A non-recursive watch does not see its own directory being renamed.
        self._schedule(os.path.dirname(directory))

    def _schedule(self, directory: str) -> None:
        if directory in self._scheduled:
            return
        self._scheduled.add(directory)
        try:
            self._observer.schedule(self._handler, directory, recursive=False)
        except OSError as exc:
            raise EventSourceError(f"cannot watch {directory}: {exc}") from exc
        logger.debug("Watching directory %s", directory)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        try:
            self._observer.start()
        except OSError as exc:
            raise EventSourceError(f"cannot start file-system observer: {exc}") from exc
        self._started = True
        logger.info(
            "Watch session started (%d files in %d directories)",
            len(self._masks),
            len(self._dirs),
        )

    def close(self) -> None:
        if self._started:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False
            logger.info("Watch session closed.")

    def __enter__(self) -> WatchSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def receive(self) -> EventRecord:
        """Block until the next record is available.

        Raises:
            EventSourceError: if the notification mechanism failed.
        """
        item = self._queue.get()
        if isinstance(item, EventSourceError):
            raise item
        return item

    def _record(self, observed: str, kind: ChangeKind, token: int = 0) -> Iterator[EventRecord]:
        for path in sorted(self._aliases.get(observed, ())):
            mask = kind & self._masks[path]
            if mask:
                yield EventRecord(path=path, mask=mask, token=token)

    def _lost_directory(self, event: FileSystemEvent) -> str | None:
        if isinstance(event, DirDeletedEvent) and _norm(event.src_path) in self._dirs:
            return _norm(event.src_path)
        if isinstance(event, DirMovedEvent):
            for side in (event.src_path, event.dest_path):
                if _norm(side) in self._dirs:
                    return _norm(side)
        return None

    def _translate(self, event: FileSystemEvent) -> Iterator[EventRecord]:
        if event.is_directory:
            # Losing a watched directory ends every watch below it.
            lost = self._lost_directory(event)
            if lost is not None:
                self._queue.put(EventSourceError(f"watched directory {lost} went away"))
            return

        if isinstance(event, FileMovedEvent):
            token = next(self._tokens)
            yield from self._record(_norm(event.src_path), ChangeKind.MOVE_SELF, token)
            yield from self._record(_norm(event.dest_path), ChangeKind.CREATE, token)
            return

        kind = _EVENT_MAP.get(type(event))
        if kind is None:
            return
        yield from self._record(_norm(event.src_path), kind)
