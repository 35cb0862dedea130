"""
Timestamp normalization shared by all importers.

Exports encode instants as Unix seconds, milliseconds or (the legacy
Hangouts format) microseconds, usually without saying which. A single
magnitude threshold separates seconds from milliseconds:

    raw <= 10_000_000_000  → seconds since epoch
    raw >  10_000_000_000  → milliseconds since epoch

10_000_000_000 seconds is roughly the year 2286, so no realistic seconds
value is mistaken for milliseconds. This is a heuristic, not a guarantee
for adversarial input: a post-2286 seconds value would be misread.

Every function here returns a timezone-aware datetime in UTC.
"""

import re
from datetime import datetime, timezone
from typing import Union

EPOCH_UNIT_THRESHOLD = 10_000_000_000

RawTimestamp = Union[int, float, str]

_NUMERIC_PATTERN = re.compile(r"^[+-]?\d+(\.\d+)?$")

# Google Takeout chat exports: "Monday, January 2, 2023 at 3:04:05 PM UTC"
_TAKEOUT_FORMATS = (
    "%A, %B %d, %Y at %I:%M:%S %p %Z",
    "%A, %B %d, %Y at %I:%M:%S %p",
)


def _to_number(raw: RawTimestamp) -> float:
    """Coerce an int, float or numeric string; reject everything else."""
    if isinstance(raw, bool):
        raise ValueError(f"Not a timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        return raw
    if isinstance(raw, str) and _NUMERIC_PATTERN.match(raw.strip()):
        text = raw.strip()
        return float(text) if "." in text else int(text)
    raise ValueError(f"Not a numeric timestamp: {raw!r}")


def _from_millis(millis: float) -> datetime:
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"Timestamp out of range: {millis!r} ms") from e


def from_epoch(raw: RawTimestamp) -> datetime:
    """
    Convert a seconds-or-milliseconds epoch value to a UTC datetime.

    Args:
        raw: Epoch value of unknown unit (int, float or numeric string).

    Returns:
        Aware datetime in UTC.

    Raises:
        ValueError: If the value is not numeric or out of range.

    Examples:
        >>> from_epoch(1700000000).isoformat()
        '2023-11-14T22:13:20+00:00'
        >>> from_epoch(1700000000000).isoformat()
        '2023-11-14T22:13:20+00:00'
    """
    value = _to_number(raw)
    if value <= EPOCH_UNIT_THRESHOLD:
        return _from_millis(value * 1000)
    return _from_millis(value)


def from_epoch_micros(raw: RawTimestamp) -> datetime:
    """
    Convert a microseconds epoch value (legacy Hangouts) to a UTC datetime.

    The value is divided by 1,000 and then read as milliseconds.
    """
    value = _to_number(raw)
    return _from_millis(value / 1000)


def parse_datetime_text(raw: str) -> datetime:
    """
    Parse a textual timestamp into a UTC datetime.

    Accepts ISO-8601 (with or without offset, trailing "Z" allowed) and the
    long Google Takeout form. Values without an offset are taken as UTC.

    Raises:
        ValueError: If the text matches no known format.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"Not a timestamp string: {raw!r}")

    text = raw.strip()
    if _NUMERIC_PATTERN.match(text):
        return from_epoch(text)

    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        # Takeout puts a narrow no-break space before AM/PM in newer exports
        cleaned = text.replace("\u202f", " ")
        for fmt in _TAKEOUT_FORMATS:
            try:
                parsed = datetime.strptime(cleaned, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise ValueError(f"Unrecognized timestamp format: {raw!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_timestamp(raw: object) -> datetime:
    """Numeric values go through the unit heuristic; strings are parsed as text."""
    if isinstance(raw, str):
        return parse_datetime_text(raw)
    if isinstance(raw, (int, float)):
        return from_epoch(raw)
    raise ValueError(f"Unsupported timestamp value: {raw!r}")
