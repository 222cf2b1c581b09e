# tests/conftest.py
"""
Shared pytest fixtures for the hardwatch test suite.

Provides a recording policy applier, a scripted event source that stands in
for a watchdog-backed WatchSession, and a small configuration on disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple, Union

import pytest

from hardwatch.applier import PolicyApplyError
from hardwatch.config import Target
from hardwatch.events import ChangeKind, EventRecord
from hardwatch.monitor import EventSourceError


class RecordingApplier:
    """Policy applier that records calls and fails for selected paths."""

    def __init__(self, failing: Optional[Iterable[str]] = None) -> None:
        self.failing: Set[str] = set(failing or ())
        self.applied: List[Target] = []

    def apply(self, target: Target) -> None:
        self.applied.append(target)
        if target.path in self.failing:
            raise PolicyApplyError(f"paxctl exited with status 1 for {target.path}")

    @property
    def paths(self) -> List[str]:
        return [t.path for t in self.applied]


class ScriptedSource:
    """Event source that replays a fixed list of records and errors.

    Once the script runs out, ``receive`` raises EventSourceError so a test
    can never block forever.
    """

    def __init__(self, script: Iterable[Union[EventRecord, Exception]] = ()) -> None:
        self.script = list(script)
        self.watches: List[Tuple[str, ChangeKind]] = []
        self.started = False
        self.closed = False
        self.fail_on_watch: Optional[str] = None

    def add_watch(self, path: str, mask: ChangeKind) -> None:
        if path == self.fail_on_watch:
            raise EventSourceError(f"cannot watch {path}: no such file")
        self.watches.append((path, mask))

    def start(self) -> None:
        self.started = True

    def close(self) -> None:
        self.closed = True

    def receive(self) -> EventRecord:
        if not self.script:
            raise EventSourceError("script exhausted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class SourceFactory:
    """Hands out one ScriptedSource per watch session, in order."""

    def __init__(self, *scripts: Iterable[Union[EventRecord, Exception]]) -> None:
        self.sources = [ScriptedSource(s) for s in scripts]
        self.created: List[ScriptedSource] = []

    def __call__(self) -> ScriptedSource:
        source = self.sources[len(self.created)]
        self.created.append(source)
        return source


@pytest.fixture
def applier() -> RecordingApplier:
    return RecordingApplier()


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """The temporary directory with symlinks resolved, as watchdog reports it."""
    return tmp_path.resolve()


@pytest.fixture
def target_files(root: Path) -> Tuple[Path, Path]:
    """Two executables on disk, ``bin/a`` and ``bin/b``."""
    bindir = root / "bin"
    bindir.mkdir()
    a = bindir / "a"
    b = bindir / "b"
    a.write_bytes(b"\x7fELF-a")
    b.write_bytes(b"\x7fELF-b")
    return a, b


@pytest.fixture
def config_file(root: Path, target_files: Tuple[Path, Path]) -> Path:
    """A configuration file assigning ``m`` to ``a`` and ``em`` to ``b``."""
    a, b = target_files
    conf = root / "hardwatch.conf"
    conf.write_text(f"# test targets\n{a}\tm\n\n{b}\tem\n")
    return conf
