"""
Post-import message filters.

Filters run on the concatenated message list after import and before
merging or export.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Union

from message_unifier.models import Message

logger = logging.getLogger(__name__)

# Tried in order; ISO-8601 is the fallback
DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y")

DateLike = Union[date, datetime, str, None]


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a user-supplied date into an aware UTC datetime.

    Accepts YYYY-MM-DD, YYYY/MM/DD, MM/DD/YYYY and ISO-8601 with a time.
    Values without an offset are taken as UTC.

    Returns:
        The parsed datetime, or None for an empty value.

    Raises:
        ValueError: If the value matches no accepted format.

    Examples:
        >>> parse_date("2024-01-31").isoformat()
        '2024-01-31T00:00:00+00:00'
    """
    if value is None or not value.strip():
        return None
    text = value.strip()

    parsed: Optional[datetime] = None
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Unrecognized date: {value!r}") from None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_date_only(value: DateLike) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        text = value.strip()
        return "T" not in text and ":" not in text
    return False


def _coerce(value: DateLike) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return parse_date(value)


class DateRangeFilter:
    """
    Keep messages whose timestamp lies in [start, end], both inclusive.

    An end given as a plain date covers that whole day.
    """

    def __init__(self, start: DateLike = None, end: DateLike = None):
        self.start = _coerce(start)
        end_dt = _coerce(end)
        if end_dt is not None and _is_date_only(end):
            end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
        self.end = end_dt
        if self.start and self.end and self.start > self.end:
            raise ValueError(f"Start date {self.start.date()} is after end date {self.end.date()}")

    @property
    def enabled(self) -> bool:
        return self.start is not None or self.end is not None

    def is_in_range(self, message: Message) -> bool:
        if self.start is not None and message.timestamp_utc < self.start:
            return False
        if self.end is not None and message.timestamp_utc > self.end:
            return False
        return True

    def apply(self, messages: Iterable[Message]) -> List[Message]:
        messages = list(messages)
        if not self.enabled:
            return messages
        kept = [m for m in messages if self.is_in_range(m)]
        if len(kept) < len(messages):
            start = self.start.date() if self.start else "no start"
            end = self.end.date() if self.end else "no end"
            logger.info(f"Date filter {start} to {end}: {len(messages)} -> {len(kept)} messages")
        return kept


def _message_key(message: Message) -> tuple:
    return (
        message.source_application,
        message.sender.signature,
        message.recipient.signature,
        message.timestamp_utc,
        message.body,
    )


def remove_duplicate_messages(messages: Iterable[Message]) -> List[Message]:
    """
    Drop exact duplicates, keeping the first occurrence.

    Two messages are duplicates when source, sender, recipient, timestamp
    and body all match; overlapping exports of the same mailbox produce
    these.
    """
    seen = set()
    unique = []
    total = 0
    for message in messages:
        total += 1
        key = _message_key(message)
        if key in seen:
            continue
        seen.add(key)
        unique.append(message)

    if len(unique) < total:
        logger.info(f"Duplicate removal: removed {total - len(unique)}, kept {len(unique)}")
    return unique
