"""
Participant identifier clean-up shared by every importer.

Exports disagree on how they write the same person: an SMS backup stores
"(415) 555-1234", a chat export "+14155551234", a mail header
"Doe, John <John.Doe@Example.com>". Contacts are built from the cleaned
forms so that their signatures line up across sources.

Rules:
    phones   - digits only, "+" prefix; a bare 10-digit number is taken as
               North American (+1); short codes (under 7 digits) are kept
               verbatim
    emails   - trimmed and lowercased; values without "@" pass through
    names    - "Last, First" reordered, whitespace collapsed

Duplicate detection compares phones more loosely than it stores them:
only the trailing 10 digits count, so a number written with and without
its country code still matches.
"""

import re
from typing import Literal

ContactType = Literal["phone", "email", "unknown"]

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
NON_DIGIT_PATTERN = re.compile(r"\D")
# Characters people put between the digits of a phone number
PHONE_PUNCTUATION_PATTERN = re.compile(r"[\s().\-/+]")
WHITESPACE_PATTERN = re.compile(r"\s+")
NAME_PUNCTUATION_PATTERN = re.compile(r"[._\-'\"(),]")

URI_SCHEMES = ("tel:", "sms:", "mailto:")

NANP_DIGITS = 10
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

# Trailing digits compared when matching phones across sources
PHONE_MATCH_DIGITS = 10


def _strip_scheme(value: str) -> str:
    lowered = value.lower()
    for scheme in URI_SCHEMES:
        if lowered.startswith(scheme):
            return value[len(scheme):]
    return value


def normalize_phone(raw: str) -> str:
    """
    Bring a phone number into E.164 form.

    Examples:
        >>> normalize_phone("(415) 555-1234")
        '+14155551234'
        >>> normalize_phone("tel:+44 20 7946 0958")
        '+442079460958'
        >>> normalize_phone("72345")
        '72345'
    """
    if not raw:
        return raw

    value = _strip_scheme(raw.strip())
    digits = NON_DIGIT_PATTERN.sub("", value)
    if not digits:
        return raw

    if value.startswith("+"):
        return "+" + digits
    if len(digits) == NANP_DIGITS:
        return "+1" + digits
    if len(digits) >= MIN_PHONE_DIGITS:
        # Includes 11-digit numbers that already start with the 1 country code
        return "+" + digits
    return raw


def phone_match_key(raw: str) -> str:
    """
    Key used to decide whether two phone numbers are the same line.

    Examples:
        >>> phone_match_key("+1 (415) 555-1234")
        '4155551234'
        >>> phone_match_key("415.555.1234")
        '4155551234'
    """
    if not raw:
        return ""
    return NON_DIGIT_PATTERN.sub("", raw)[-PHONE_MATCH_DIGITS:]


def normalize_email(raw: str) -> str:
    """
    Lowercase an email address, dropping a mailto: prefix.

    Anything without an "@" is returned untouched.
    """
    if not raw or "@" not in raw:
        return raw
    return _strip_scheme(raw.strip()).lower()


def looks_like_email(value: str) -> bool:
    """True when the value has the basic local@domain.tld shape."""
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value.strip()))


def detect_contact_type(value: str) -> ContactType:
    """
    Classify a raw identifier.

    A value with "@" is an email. A value made only of digits and phone
    punctuation, with 7 to 15 digits, is a phone. Anything else (a display
    name, a group title) is unknown.

    Examples:
        >>> detect_contact_type("(415) 555-1234")
        'phone'
        >>> detect_contact_type("Room 101")
        'unknown'
    """
    if not value or not value.strip():
        return "unknown"
    value = _strip_scheme(value.strip())
    if "@" in value:
        return "email"

    remainder = PHONE_PUNCTUATION_PATTERN.sub("", value)
    if remainder.isdigit() and MIN_PHONE_DIGITS <= len(remainder) <= MAX_PHONE_DIGITS:
        return "phone"
    return "unknown"


def normalize_display_name(name: str) -> str:
    """
    Tidy a display name taken from a mail header.

    A single comma is read as "Last, First [Middle]" and reordered;
    runs of whitespace collapse to one space.

    Examples:
        >>> normalize_display_name("Doe,  John")
        'John Doe'
        >>> normalize_display_name("Doe, John, Jr.")
        'Doe, John, Jr.'
    """
    if not name or not name.strip():
        return name

    trimmed = name.strip().strip('"').strip()
    if trimmed.count(",") == 1:
        last, first = (part.strip() for part in trimmed.split(","))
        if last and first:
            trimmed = f"{first} {last}"

    return WHITESPACE_PATTERN.sub(" ", trimmed)


def normalize_name_for_matching(name: str) -> str:
    """
    Lowercase and strip punctuation and spacing for name comparison.

    Examples:
        >>> normalize_name_for_matching("John  Q. Public")
        'john q public'
    """
    if not name:
        return ""
    lowered = NAME_PUNCTUATION_PATTERN.sub(" ", name.casefold())
    return WHITESPACE_PATTERN.sub(" ", lowered).strip()
