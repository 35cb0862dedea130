"""
Unified data model shared by every importer.

All sources are mapped onto three immutable value types:

    Contact          - a participant (name + phone numbers + emails)
    Message          - one communication, always with a UTC timestamp
    MediaAttachment  - a reference to a non-text part inside the source export

Design Decisions:
    1. Values are frozen dataclasses; "editing" means building a new value
    2. Contact equality is defined by a normalized signature, not by the raw
       strings, so two contacts built independently from the same raw data
       compare equal
    3. Message rejects naive datetimes so local time never leaks out of the
       importer layer
"""

import enum
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, Optional, Tuple

from message_unifier.normalizers import normalize_email, normalize_phone

_WHITESPACE = re.compile(r"\s+")

# Display name used for the local side of sources that only know "me".
SELF_NAME = "Me"
UNKNOWN_NAME = "Unknown"


class MessageDirection(str, enum.Enum):
    """Direction of a message relative to the local user."""

    SENT = "sent"
    RECEIVED = "received"
    UNKNOWN = "unknown"


def _fold_name(name: Optional[str]) -> str:
    """Case-fold and collapse whitespace for signature comparison."""
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name).strip().casefold()


@dataclass(frozen=True, eq=False)
class Contact:
    """
    A message participant.

    Phone numbers and emails are normalized on construction (E.164 phones,
    lowercase emails). Equality and hashing go through `signature`.
    """

    name: str
    phone_numbers: FrozenSet[str] = field(default_factory=frozenset)
    emails: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        name = (self.name or "").strip()
        phones = frozenset(
            normalize_phone(p.strip()) for p in (self.phone_numbers or ()) if p and p.strip()
        )
        emails = frozenset(
            normalize_email(e.strip()) for e in (self.emails or ()) if e and e.strip()
        )
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "phone_numbers", phones)
        object.__setattr__(self, "emails", emails)

    @classmethod
    def from_phone(cls, name: Optional[str], phone: str) -> "Contact":
        """Contact with a single phone number; the number stands in for a missing name."""
        return cls(name or phone, frozenset([phone]) if phone else frozenset())

    @classmethod
    def from_email(cls, name: Optional[str], email: str) -> "Contact":
        """Contact with a single email; the address stands in for a missing name."""
        return cls(name or email, frozenset(), frozenset([email]) if email else frozenset())

    @classmethod
    def from_name(cls, name: Optional[str]) -> "Contact":
        return cls(name or UNKNOWN_NAME)

    @property
    def signature(self) -> str:
        """Stable identity key: folded name | sorted phones | sorted emails."""
        return "|".join(
            [
                _fold_name(self.name),
                ",".join(sorted(self.phone_numbers)),
                ",".join(sorted(self.emails)),
            ]
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Contact):
            return NotImplemented
        return self.signature == other.signature

    def __hash__(self) -> int:
        return hash(self.signature)

    def __str__(self) -> str:
        details = sorted(self.phone_numbers) + sorted(self.emails)
        if details:
            return f"{self.name} <{', '.join(details)}>"
        return self.name


@dataclass(frozen=True)
class MediaAttachment:
    """A non-text part of a message, referenced by its path inside the export."""

    original_source_path: str
    mime_type: str

    @property
    def file_name(self) -> str:
        """Last path segment, splitting on either slash style."""
        if not self.original_source_path:
            return ""
        path = self.original_source_path
        cut = max(path.rfind("/"), path.rfind("\\"))
        return path[cut + 1 :] if cut >= 0 else path


@dataclass(frozen=True)
class Message:
    """
    A single communication from any source.

    Attributes:
        source_application: Name of the importer that produced the message.
        sender: Contact the message is from.
        recipient: Contact (or conversation) the message is to.
        timestamp_utc: Timezone-aware instant, normalized to UTC.
        body: Text content; may be empty when only attachments exist.
        direction: Sent, received or unknown relative to the local user.
        attachments: Ordered media attachments.
    """

    source_application: str
    sender: Contact
    recipient: Contact
    timestamp_utc: datetime
    body: str = ""
    direction: MessageDirection = MessageDirection.UNKNOWN
    attachments: Tuple[MediaAttachment, ...] = ()

    def __post_init__(self) -> None:
        if self.sender is None or self.recipient is None:
            raise ValueError("Message requires both a sender and a recipient")
        if not isinstance(self.timestamp_utc, datetime):
            raise TypeError(f"timestamp_utc must be a datetime, got {type(self.timestamp_utc).__name__}")
        if self.timestamp_utc.tzinfo is None or self.timestamp_utc.utcoffset() is None:
            raise ValueError("timestamp_utc must be timezone-aware")
        object.__setattr__(self, "timestamp_utc", self.timestamp_utc.astimezone(timezone.utc))
        object.__setattr__(self, "body", self.body or "")
        object.__setattr__(self, "attachments", tuple(self.attachments or ()))

    def with_contacts(self, sender: Contact, recipient: Contact) -> "Message":
        """Copy with replaced participants; everything else preserved."""
        if sender == self.sender and recipient == self.recipient:
            return self
        return replace(self, sender=sender, recipient=recipient)


def collect_contacts(messages: Iterable[Message]) -> list:
    """Distinct contacts referenced by messages, in first-seen order."""
    seen = {}
    for message in messages:
        for contact in (message.sender, message.recipient):
            seen.setdefault(contact.signature, contact)
    return list(seen.values())
