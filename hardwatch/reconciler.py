"""
reconciler.py — The change-triggered reconciliation loop for hardwatch.

Combines a watch session, the deduplicator and the policy applier into a
state machine:
  1. STARTING: watch the configuration file and every target.
  2. WATCHING: receive one EventRecord at a time.
  3. A change to the configuration file ends the run with RELOAD_REQUESTED.
  4. A change to a present target re-applies that target's policy.
  5. An event-source error or a failed apply ends the run in FAILED and the
     exception propagates to the caller.

This module performs no retries and no sleeping.  Recovery belongs to the
supervisor.
"""

from __future__ import annotations

import enum
import logging
import os
from typing import Callable

from hardwatch.applier import PolicyApplier, PolicyApplyError
from hardwatch.config import Registry
from hardwatch.dedup import Deduplicator
from hardwatch.events import CONFIG_MASK, TARGET_MASK, EventRecord, describe_mask
from hardwatch.monitor import EventSourceError, WatchSession

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    STARTING = "starting"
    WATCHING = "watching"
    RELOAD_REQUESTED = "reload_requested"
    FAILED = "failed"


class Reconciler:
    """One run of the reconciliation loop over a single Registry.

    Parameters:
        registry:       Targets and configuration path to watch.
        applier:        Applies a target's policy; raises PolicyApplyError.
        source_factory: Returns a fresh, unstarted watch session.  Each run
                        gets its own session and its own dedup cache.
    """

    def __init__(
        self,
        registry: Registry,
        applier: PolicyApplier,
        source_factory: Callable[[], WatchSession] = WatchSession,
    ) -> None:
        self.registry = registry
        self.applier = applier
        self.source_factory = source_factory
        self.state = LoopState.STARTING

    def run(self) -> LoopState:
        """Watch until the configuration changes.

        Returns:
            ``LoopState.RELOAD_REQUESTED``; that is the only normal exit.

        Raises:
            EventSourceError: the watch could not be set up or failed.
            PolicyApplyError: re-applying a changed target failed.
        """
        self.state = LoopState.STARTING
        source = self.source_factory()
        try:
            self._start(source)
            dedup = Deduplicator()
            self.state = LoopState.WATCHING
            while self.state is LoopState.WATCHING:
                self.handle(source.receive(), dedup)
        except (EventSourceError, PolicyApplyError):
            self.state = LoopState.FAILED
            raise
        finally:
            source.close()
        return self.state

    def _start(self, source: WatchSession) -> None:
        source.add_watch(self.registry.config_path, CONFIG_MASK)
        for target in self.registry.targets():
            logger.info("Adding watch for %s", target.path)
            source.add_watch(target.path, TARGET_MASK)
        source.start()

    def handle(self, record: EventRecord, dedup: Deduplicator) -> None:
        """Act on one record while WATCHING."""
        logger.info("Event for %s (%s)", record.path, describe_mask(record.mask))

        if record.path == self.registry.config_path:
            logger.info("Configuration file %s changed", record.path)
            self.state = LoopState.RELOAD_REQUESTED
            return

        if dedup.is_duplicate(record):
            logger.debug("Dropping repeated event for %s", record.path)
            return

        target = self.registry.get(record.path)
        if target is None:
            logger.warning("Event for %s, but it isn't being monitored", record.path)
            return

        try:
            os.stat(target.path)
        except OSError as exc:
            # Expected after a delete or a move away.
            logger.info("Unable to stat %s: %s", target.path, exc)
            return

        try:
            self.applier.apply(target)
        except PolicyApplyError as exc:
            logger.error("Error applying flags to %s: %s", target.path, exc)
            raise
