"""
Tests for filters.py: date parsing, date ranges and duplicate removal.
"""

from datetime import date, datetime, timezone

import pytest

from message_unifier.filters import DateRangeFilter, parse_date, remove_duplicate_messages
from message_unifier.models import Contact, Message


def _at(*args) -> Message:
    return Message(
        source_application="Test",
        sender=Contact("Alice"),
        recipient=Contact("Me"),
        timestamp_utc=datetime(*args, tzinfo=timezone.utc),
        body="hi",
    )


class TestParseDate:
    """Tests for parse_date."""

    @pytest.mark.parametrize(
        "value",
        ["2024-01-31", "2024/01/31", "01/31/2024", " 2024-01-31 "],
    )
    def test_date_formats(self, value):
        assert parse_date(value) == datetime(2024, 1, 31, tzinfo=timezone.utc)

    def test_iso_with_offset_converted_to_utc(self):
        assert parse_date("2024-01-31T10:00:00+02:00") == datetime(2024, 1, 31, 8, tzinfo=timezone.utc)

    def test_iso_with_z(self):
        assert parse_date("2024-01-31T10:00:00Z") == datetime(2024, 1, 31, 10, tzinfo=timezone.utc)

    def test_empty_is_none(self):
        assert parse_date(None) is None
        assert parse_date("   ") is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError, match="Unrecognized date"):
            parse_date("last tuesday")


class TestDateRangeFilter:
    """Tests for DateRangeFilter."""

    def test_disabled_keeps_everything(self):
        messages = [_at(2020, 1, 1), _at(2030, 1, 1)]
        date_filter = DateRangeFilter()
        assert not date_filter.enabled
        assert date_filter.apply(messages) == messages

    def test_bounds_are_inclusive(self):
        messages = [_at(2023, 12, 31, 23, 59, 59), _at(2024, 1, 1), _at(2024, 1, 31, 23, 59, 59), _at(2024, 2, 1)]
        kept = DateRangeFilter("2024-01-01", "2024-01-31").apply(messages)
        assert kept == messages[1:3]

    def test_end_with_time_is_exact(self):
        messages = [_at(2024, 1, 31, 11), _at(2024, 1, 31, 13)]
        kept = DateRangeFilter(end="2024-01-31T12:00:00Z").apply(messages)
        assert kept == messages[:1]

    def test_date_objects(self):
        messages = [_at(2024, 1, 1, 12), _at(2024, 1, 2, 12)]
        kept = DateRangeFilter(start=date(2024, 1, 2)).apply(messages)
        assert kept == messages[1:]

    def test_naive_datetime_taken_as_utc(self):
        date_filter = DateRangeFilter(start=datetime(2024, 1, 1))
        assert date_filter.start == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_start_after_end_raises(self):
        with pytest.raises(ValueError, match="after end date"):
            DateRangeFilter("2024-02-01", "2024-01-01")

    def test_same_day_range(self):
        messages = [_at(2024, 1, 1, 0), _at(2024, 1, 1, 23, 59), _at(2024, 1, 2)]
        assert DateRangeFilter("2024-01-01", "2024-01-01").apply(messages) == messages[:2]


class TestRemoveDuplicateMessages:
    """Tests for remove_duplicate_messages."""

    def test_keeps_first_occurrence(self):
        first = _at(2024, 1, 1)
        duplicate = _at(2024, 1, 1)
        other = _at(2024, 1, 2)
        result = remove_duplicate_messages([first, other, duplicate])
        assert result == [first, other]
        assert result[0] is first

    def test_different_source_is_not_duplicate(self):
        a = _at(2024, 1, 1)
        b = Message(
            source_application="Other",
            sender=a.sender,
            recipient=a.recipient,
            timestamp_utc=a.timestamp_utc,
            body=a.body,
        )
        assert remove_duplicate_messages([a, b]) == [a, b]

    def test_empty(self):
        assert remove_duplicate_messages([]) == []
