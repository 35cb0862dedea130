"""
Duplicate-contact candidate detection.

Two contacts are linked when either
    - they share a phone number (last 10 digits, formatting stripped), or
    - their names are compatible: equal after normalization, one a prefix
      of the other ("john" / "johnny"), or Jaro-Winkler similar above the
      threshold with the same first letter ("john" / "jane" never link).

Links are unioned into groups; each group of two or more contacts is one
candidate needing an operator decision. Names that are placeholders ("Me",
"Unknown") or really an address never link by name.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from rapidfuzz.distance import JaroWinkler

from message_unifier.merge.decisions import MergeDecisionLog
from message_unifier.merge.engine import canonical_signature, resolve_mapping
from message_unifier.models import SELF_NAME, UNKNOWN_NAME, Contact
from message_unifier.normalizers import (
    detect_contact_type,
    normalize_name_for_matching,
    phone_match_key,
)

logger = logging.getLogger(__name__)

DEFAULT_NAME_THRESHOLD = 0.92

# Shortest name that may count as a prefix of another
MIN_PREFIX_LENGTH = 3

# Shortest trailing-digit key that identifies a phone line
MIN_PHONE_KEY_LENGTH = 7

PLACEHOLDER_NAMES = {"", SELF_NAME.casefold(), UNKNOWN_NAME.casefold(), "(unknown)"}

REASON_PHONE = "shared phone number"
REASON_NAME = "similar names"


@dataclass(frozen=True)
class MergeCandidate:
    """A group of contacts that probably denote one person."""

    contacts: Tuple[Contact, ...]
    reason: str

    @property
    def signatures(self) -> FrozenSet[str]:
        return frozenset(c.signature for c in self.contacts)

    def to_dict(self) -> Dict[str, object]:
        return {
            "reason": self.reason,
            "contacts": [
                {
                    "name": c.name,
                    "phone_numbers": sorted(c.phone_numbers),
                    "emails": sorted(c.emails),
                    "signature": c.signature,
                }
                for c in self.contacts
            ],
        }

    def __str__(self) -> str:
        return f"{self.reason}: " + "; ".join(str(c) for c in self.contacts)


def _matchable_name(contact: Contact) -> Optional[str]:
    """Normalized name, or None when the name must not be used for linking."""
    if contact.name.strip().casefold() in PLACEHOLDER_NAMES:
        return None
    if detect_contact_type(contact.name) != "unknown":
        return None
    normalized = normalize_name_for_matching(contact.name)
    if normalized in PLACEHOLDER_NAMES:
        return None
    return normalized or None


def names_compatible(a: Optional[str], b: Optional[str], threshold: float = DEFAULT_NAME_THRESHOLD) -> bool:
    """
    Decide whether two normalized names plausibly belong to one person.

    Examples:
        >>> names_compatible("john", "johnny")
        True
        >>> names_compatible("john", "jane")
        False
    """
    if not a or not b:
        return False
    if a == b:
        return True
    shorter, longer = sorted((a, b), key=len)
    if len(shorter) >= MIN_PREFIX_LENGTH and longer.startswith(shorter):
        return True
    if a[0] != b[0]:
        return False
    return JaroWinkler.similarity(a, b) >= threshold


def _phone_keys(contact: Contact) -> Set[str]:
    keys = {phone_match_key(p) for p in contact.phone_numbers}
    return {k for k in keys if len(k) >= MIN_PHONE_KEY_LENGTH}


class _DisjointSet:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, i: int, j: int) -> None:
        root_i, root_j = self.find(i), self.find(j)
        if root_i != root_j:
            self.parent[max(root_i, root_j)] = min(root_i, root_j)


def find_merge_candidates(
    contacts: Iterable[Contact],
    decisions: Optional[MergeDecisionLog] = None,
    threshold: float = DEFAULT_NAME_THRESHOLD,
) -> List[MergeCandidate]:
    """
    Group likely-duplicate contacts.

    Args:
        contacts: Contacts from the imported corpus; duplicates by signature
            are collapsed first.
        decisions: Past decisions. Groups skipped before, and groups a
            confirmed decision already maps to one contact, are left out.
        threshold: Minimum Jaro-Winkler similarity for fuzzy name links.

    Returns:
        Candidates in the order their first contact appeared.
    """
    unique: Dict[str, Contact] = {}
    for contact in contacts:
        unique.setdefault(contact.signature, contact)
    ordered = list(unique.values())

    names = [_matchable_name(c) for c in ordered]
    phones = [_phone_keys(c) for c in ordered]
    links = _DisjointSet(len(ordered))
    reasons: Dict[Tuple[int, int], Set[str]] = {}

    for i in range(len(ordered)):
        for j in range(i + 1, len(ordered)):
            why = set()
            if phones[i] & phones[j]:
                why.add(REASON_PHONE)
            if names_compatible(names[i], names[j], threshold):
                why.add(REASON_NAME)
            if why:
                links.union(i, j)
                reasons[(i, j)] = why

    groups: Dict[int, List[int]] = {}
    for index in range(len(ordered)):
        groups.setdefault(links.find(index), []).append(index)

    mapping = resolve_mapping(decisions) if decisions is not None else {}
    candidates = []
    for members in groups.values():
        if len(members) < 2:
            continue
        member_set = set(members)
        why: Set[str] = set()
        for (i, j), pair_reasons in reasons.items():
            if i in member_set and j in member_set:
                why |= pair_reasons
        candidate = MergeCandidate(
            contacts=tuple(ordered[m] for m in members),
            reason=" and ".join(sorted(why)),
        )

        if decisions is not None:
            if decisions.is_skipped(candidate.signatures):
                continue
            if len({canonical_signature(s, mapping) for s in candidate.signatures}) == 1:
                continue
        candidates.append(candidate)

    logger.info(f"Found {len(candidates)} merge candidate group(s) among {len(ordered)} contact(s)")
    return candidates
