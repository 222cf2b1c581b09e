"""
events.py — Shared event schema for hardwatch.

Defines the canonical EventRecord dataclass that the monitoring layer emits
and the reconciliation loop consumes, plus the change-kind bitmask.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ChangeKind(enum.IntFlag):
    """Kinds of change reported for a watched path (inotify bit values)."""

    MODIFY = 0x00000002
    ATTRIB = 0x00000004
    CLOSE_WRITE = 0x00000008
    CREATE = 0x00000100
    DELETE_SELF = 0x00000400
    MOVE_SELF = 0x00000800


TARGET_MASK = (
    ChangeKind.MODIFY
    | ChangeKind.ATTRIB
    | ChangeKind.CREATE
    | ChangeKind.MOVE_SELF
    | ChangeKind.DELETE_SELF
    | ChangeKind.CLOSE_WRITE
)

# Editors either write in place or rename a new file over the old one.
CONFIG_MASK = ChangeKind.MODIFY | ChangeKind.MOVE_SELF | ChangeKind.CREATE

_DESCRIPTIONS = (
    (ChangeKind.MODIFY, "modified"),
    (ChangeKind.ATTRIB, "attrib"),
    (ChangeKind.CREATE, "create"),
    (ChangeKind.MOVE_SELF, "move_self"),
    (ChangeKind.DELETE_SELF, "delete_self"),
    (ChangeKind.CLOSE_WRITE, "close_write"),
)


@dataclass(frozen=True)
class EventRecord:
    """A single normalised file-system change.

    Attributes:
        path:  Absolute path of the affected file.
        mask:  Bitmask of ChangeKind values.
        token: Groups the deliveries of one rename within a watch session.
               ``0`` means the record is not part of a group.
    """

    path: str
    mask: ChangeKind
    token: int = 0


def describe_mask(mask: int) -> str:
    """Return a comma-separated description such as ``"modified, close_write"``."""
    return ", ".join(desc for flag, desc in _DESCRIPTIONS if mask & flag)
