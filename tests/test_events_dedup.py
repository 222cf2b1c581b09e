# tests/test_events_dedup.py
"""Tests for hardwatch/events.py and hardwatch/dedup.py."""

from hardwatch.dedup import Deduplicator
from hardwatch.events import CONFIG_MASK, TARGET_MASK, ChangeKind, EventRecord, describe_mask


def test_describe_mask_lists_kinds_in_order():
    assert describe_mask(ChangeKind.CLOSE_WRITE | ChangeKind.MODIFY) == "modified, close_write"
    assert describe_mask(ChangeKind.DELETE_SELF) == "delete_self"
    assert describe_mask(0) == ""


def test_target_mask_covers_every_kind():
    for kind in ChangeKind:
        assert kind & TARGET_MASK
    assert not CONFIG_MASK & ChangeKind.CLOSE_WRITE


def test_records_compare_field_wise():
    a = EventRecord("/bin/a", ChangeKind.MODIFY, 0)
    assert a == EventRecord("/bin/a", ChangeKind.MODIFY, 0)
    assert a != EventRecord("/bin/a", ChangeKind.MODIFY, 3)


class TestDeduplicator:
    """Tests for the single-slot deduplicator."""

    def test_first_record_passes(self):
        assert Deduplicator().is_duplicate(EventRecord("/bin/a", ChangeKind.MODIFY)) is False

    def test_identical_consecutive_record_is_suppressed(self):
        dedup = Deduplicator()
        rec = EventRecord("/bin/a", ChangeKind.MODIFY, 0)
        assert dedup.is_duplicate(rec) is False
        assert dedup.is_duplicate(EventRecord("/bin/a", ChangeKind.MODIFY, 0)) is True
        assert dedup.last == rec

    def test_any_differing_field_passes(self):
        base = EventRecord("/bin/a", ChangeKind.MODIFY, 0)
        for other in (
            EventRecord("/bin/b", ChangeKind.MODIFY, 0),
            EventRecord("/bin/a", ChangeKind.ATTRIB, 0),
            EventRecord("/bin/a", ChangeKind.MODIFY, 7),
        ):
            dedup = Deduplicator()
            assert dedup.is_duplicate(base) is False
            assert dedup.is_duplicate(other) is False
            assert dedup.last == other

    def test_only_the_previous_record_is_remembered(self):
        """A, B, A: the second A is not adjacent to the first, so it passes."""
        dedup = Deduplicator()
        a = EventRecord("/bin/a", ChangeKind.MODIFY)
        b = EventRecord("/bin/b", ChangeKind.MODIFY)
        assert [dedup.is_duplicate(r) for r in (a, a, b, a, a)] == [False, True, False, False, True]
