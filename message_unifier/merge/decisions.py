"""
Persisted contact-merge decisions.

Every operator choice about a merge candidate is appended to a JSON log:

    {
      "version": 1,
      "decisions": [
        {"source_contacts": ["john|+15551234567|", "johnny||"],
         "target_name": "John Smith",
         "target_phones": ["+15551234567"],
         "target_emails": [],
         "is_skipped": false,
         "reason": "same person",
         "decided_at": "2024-01-02T03:04:05+00:00"}
      ]
    }

Design Decisions:
    1. Contacts are referenced by signature, so a decision applies to any
       contact built from the same raw data in a later import
    2. The log is append-only; the file is rewritten through a temp file and
       os.replace so a crash never leaves half a log behind
    3. A missing file is an empty log; a corrupt file raises ValueError
       rather than being discarded
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple

from message_unifier.models import Contact

logger = logging.getLogger(__name__)

LOG_VERSION = 1


@dataclass(frozen=True)
class MergeDecision:
    """One operator decision about one candidate group."""

    source_contacts: Tuple[str, ...]
    target_name: str = ""
    target_phones: Tuple[str, ...] = ()
    target_emails: Tuple[str, ...] = ()
    is_skipped: bool = False
    reason: str = ""
    decided_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.source_contacts:
            raise ValueError("A merge decision needs at least one source contact")
        if not self.is_skipped and not (self.target_name or "").strip():
            raise ValueError("A confirmed merge decision needs a target name")
        object.__setattr__(self, "source_contacts", tuple(self.source_contacts))
        object.__setattr__(self, "target_phones", tuple(self.target_phones or ()))
        object.__setattr__(self, "target_emails", tuple(self.target_emails or ()))

    @property
    def source_set(self) -> FrozenSet[str]:
        return frozenset(self.source_contacts)

    @property
    def target_contact(self) -> Optional[Contact]:
        """Canonical contact for a confirmed decision; None when skipped."""
        if self.is_skipped:
            return None
        return Contact(self.target_name, frozenset(self.target_phones), frozenset(self.target_emails))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_contacts": list(self.source_contacts),
            "target_name": self.target_name,
            "target_phones": list(self.target_phones),
            "target_emails": list(self.target_emails),
            "is_skipped": self.is_skipped,
            "reason": self.reason,
            "decided_at": self.decided_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergeDecision":
        decided_at = datetime.fromisoformat(data["decided_at"])
        if decided_at.tzinfo is None:
            decided_at = decided_at.replace(tzinfo=timezone.utc)
        return cls(
            source_contacts=tuple(data["source_contacts"]),
            target_name=data.get("target_name") or "",
            target_phones=tuple(data.get("target_phones") or ()),
            target_emails=tuple(data.get("target_emails") or ()),
            is_skipped=bool(data.get("is_skipped", False)),
            reason=data.get("reason") or "",
            decided_at=decided_at,
        )


class MergeDecisionLog:
    """
    Append-only decision log, optionally backed by a JSON file.

    Args:
        path: File to load from and save to. None keeps the log in memory.

    Raises:
        ValueError: If the file exists but is not a valid decision log.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._decisions: List[MergeDecision] = self._load() if self.path is not None else []

    def _load(self) -> List[MergeDecision]:
        if not self.path.exists():
            logger.debug(f"No merge decision log at {self.path}; starting empty")
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Merge decision log {self.path} is corrupt: {e}") from e

        if not isinstance(document, dict) or not isinstance(document.get("decisions"), list):
            raise ValueError(f"Merge decision log {self.path} has no 'decisions' list")
        version = document.get("version", LOG_VERSION)
        if version != LOG_VERSION:
            raise ValueError(f"Unsupported merge decision log version {version!r} in {self.path}")

        decisions = []
        for index, raw in enumerate(document["decisions"]):
            try:
                decisions.append(MergeDecision.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise ValueError(f"Invalid decision #{index} in {self.path}: {e}") from e
        logger.info(f"Loaded {len(decisions)} merge decision(s) from {self.path}")
        return decisions

    def save(self) -> None:
        """Rewrite the file atomically. No-op for an in-memory log."""
        if self.path is None:
            return
        document = {"version": LOG_VERSION, "decisions": [d.to_dict() for d in self._decisions]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def append(self, decision: MergeDecision) -> MergeDecision:
        with self._lock:
            self._decisions.append(decision)
            self.save()
        return decision

    def confirm(self, candidate, target: Contact, reason: str = "") -> MergeDecision:
        """
        Record that every contact in `candidate` is `target`.

        Args:
            candidate: A MergeCandidate (or anything with `signatures`).
            target: The canonical contact to rewrite them to.
            reason: Free-text note kept in the log.
        """
        decision = MergeDecision(
            source_contacts=tuple(sorted(candidate.signatures)),
            target_name=target.name,
            target_phones=tuple(sorted(target.phone_numbers)),
            target_emails=tuple(sorted(target.emails)),
            is_skipped=False,
            reason=reason,
        )
        logger.info(f"Merge confirmed: {len(decision.source_contacts)} contact(s) -> {target}")
        return self.append(decision)

    def skip(self, candidate, reason: str = "") -> MergeDecision:
        """Record that `candidate` is not a duplicate; it will not be offered again."""
        decision = MergeDecision(
            source_contacts=tuple(sorted(candidate.signatures)),
            is_skipped=True,
            reason=reason,
        )
        logger.info(f"Merge skipped for {len(decision.source_contacts)} contact(s)")
        return self.append(decision)

    @property
    def decisions(self) -> List[MergeDecision]:
        with self._lock:
            return list(self._decisions)

    @property
    def confirmed(self) -> List[MergeDecision]:
        return [d for d in self.decisions if not d.is_skipped]

    def is_skipped(self, signatures) -> bool:
        """True if this exact set of signatures was skipped before."""
        wanted = frozenset(signatures)
        return any(d.is_skipped and d.source_set == wanted for d in self.decisions)

    def __len__(self) -> int:
        return len(self._decisions)

    def __iter__(self) -> Iterator[MergeDecision]:
        return iter(self.decisions)
