"""
dedup.py — Suppression of immediately repeated event deliveries.

The kernel notification path is known to hand over the very same record
twice for a single change.  Only the previous record is remembered; this is
not a debounce timer and distinct records in a burst are all let through.
"""

from __future__ import annotations

from typing import Optional

from hardwatch.events import EventRecord


class Deduplicator:
    """Single-slot cache of the last record that was let through.

    One instance belongs to exactly one watch session.
    """

    def __init__(self) -> None:
        self.last: Optional[EventRecord] = None

    def is_duplicate(self, record: EventRecord) -> bool:
        """Return ``True`` if *record* equals the previous one.

        A duplicate leaves the cache untouched; anything else replaces it.
        """
        if record == self.last:
            return True
        self.last = record
        return False
