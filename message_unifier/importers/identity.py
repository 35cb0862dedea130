"""
Local-user identity resolution.

Several group-chat exports record each message's creator but never say
which participant is the account owner. The owner appears in essentially
every conversation exported for their account, while anyone else appears
in only some of them. Identity resolution is therefore a corpus-wide pass
that runs *before* per-message parsing:

    1. For every creator email, count the distinct conversations it
       appears in (not the raw message count, so one chatty contact in a
       single busy group cannot win).
    2. The email with the highest count is the local user.
    3. A tie at the top, or no emails at all, leaves the identity
       unresolved. Messages then keep Direction = Unknown.

The result travels in an explicit ImportContext rather than in module
globals, so importers cannot observe each other's state by accident and
the resolver can be tested on its own.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from message_unifier.models import MessageDirection
from message_unifier.normalizers import looks_like_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityResolution:
    """Outcome of a resolver pass over one source."""

    email: Optional[str]
    conversation_counts: Mapping[str, int] = field(default_factory=dict)
    conversation_total: int = 0

    @property
    def resolved(self) -> bool:
        return self.email is not None


def _fold_email(email: Optional[str]) -> Optional[str]:
    if not email or not email.strip():
        return None
    return email.strip().casefold()


def resolve_local_identity(conversations: Iterable[Iterable[Optional[str]]]) -> IdentityResolution:
    """
    Infer the local user's email from per-conversation creator emails.

    Args:
        conversations: One iterable of creator emails per conversation.
            Empty or missing emails are ignored.

    Returns:
        IdentityResolution whose `email` is the case-folded winner, or None
        when the corpus has no emails or the top count is tied.

    Examples:
        >>> resolve_local_identity([["a@x.com", "b@x.com"], ["a@x.com"]]).email
        'a@x.com'
        >>> resolve_local_identity([["a@x.com"], ["b@x.com"]]).email is None
        True
    """
    counts: Counter = Counter()
    total = 0
    for conversation in conversations:
        total += 1
        present = {folded for folded in map(_fold_email, conversation) if folded}
        counts.update(present)

    if not counts:
        logger.info(f"Identity unresolved: no creator emails in {total} conversation(s)")
        return IdentityResolution(email=None, conversation_counts={}, conversation_total=total)

    ranked = counts.most_common()
    top_email, top_count = ranked[0]
    if len(ranked) > 1 and ranked[1][1] == top_count:
        tied = sorted(email for email, count in ranked if count == top_count)
        logger.info(f"Identity unresolved: {len(tied)} emails tied at {top_count} conversation(s)")
        return IdentityResolution(email=None, conversation_counts=dict(counts), conversation_total=total)

    logger.info(
        f"Resolved local user identity: {top_email} "
        f"(present in {top_count}/{total} conversations)"
    )
    return IdentityResolution(email=top_email, conversation_counts=dict(counts), conversation_total=total)


def classify_direction(creator_email: Optional[str], identity: Optional[str]) -> MessageDirection:
    """
    Classify a message by comparing its creator with the resolved identity.

    Returns:
        SENT on a case-insensitive match, RECEIVED for any other known
        email, UNKNOWN when either side is missing.
    """
    creator = _fold_email(creator_email)
    owner = _fold_email(identity)
    if creator is None or owner is None:
        return MessageDirection.UNKNOWN
    return MessageDirection.SENT if creator == owner else MessageDirection.RECEIVED


class ImportContext:
    """
    Per-run identity knowledge threaded through every importer.

    Holds the owner names and emails given in configuration, and the
    resolver outcome for each imported source. The configured identity is
    fixed once built. Owner details an importer finds in its own export
    (profile files, delivery headers) stay local to that import, so no
    source's direction depends on which other source ran first. Safe to
    share between importers running in worker threads.
    """

    def __init__(
        self,
        user_emails: Optional[Iterable[str]] = None,
        user_names: Optional[Iterable[str]] = None,
    ):
        self._lock = threading.Lock()
        # Values that are not email-shaped are dropped
        self._emails: FrozenSet[str] = frozenset(
            e.strip().casefold() for e in user_emails or () if e and looks_like_email(e)
        )
        self._names: FrozenSet[str] = frozenset(n.strip().casefold() for n in user_names or () if n and n.strip())
        self._resolutions: Dict[str, IdentityResolution] = {}

    @property
    def user_emails(self) -> FrozenSet[str]:
        return self._emails

    @property
    def user_names(self) -> FrozenSet[str]:
        return self._names

    def is_user_email(self, email: Optional[str]) -> bool:
        folded = _fold_email(email)
        if folded is None:
            return False
        return folded in self._emails

    def record_resolution(self, source_key: str, resolution: IdentityResolution) -> None:
        with self._lock:
            self._resolutions[source_key] = resolution

    def resolution_for(self, source_key: str) -> Optional[IdentityResolution]:
        with self._lock:
            return self._resolutions.get(source_key)

    @property
    def resolutions(self) -> Dict[str, IdentityResolution]:
        with self._lock:
            return dict(self._resolutions)
