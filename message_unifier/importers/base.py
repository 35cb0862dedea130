"""
Importer interface.

Every source format implements the same three members:

    source_name       - human-readable name stamped on every message
    can_import(path)  - cheap, side-effect free recognition check
    import_messages(path, context) - full parse into unified Messages

Design Decisions:
    1. can_import never raises; unreadable paths are simply "not mine"
    2. import_messages raises for source-level failures (missing file,
       invalid JSON/XML) and skips individual malformed records
    3. Per-record skips are counted in ParseStats and summarized at INFO
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from message_unifier.importers.identity import ImportContext
from message_unifier.models import Message

logger = logging.getLogger(__name__)

# Exceptions a single malformed record may raise while being mapped
RECORD_ERRORS = (KeyError, ValueError, TypeError, AttributeError, OverflowError)


@dataclass
class ParseStats:
    """Per-import record counters."""

    source_name: str
    parsed: int = 0
    skipped: int = 0
    empty: int = 0

    def record_skip(self, reason: object, detail: str = "") -> None:
        """Count a malformed record and log it at DEBUG."""
        self.skipped += 1
        suffix = f" ({detail})" if detail else ""
        logger.debug(f"{self.source_name}: skipped record{suffix}: {reason}")

    def log_summary(self, path: Path) -> None:
        logger.info(
            f"{self.source_name}: imported {self.parsed} message(s) from {path}"
            f" ({self.skipped} malformed, {self.empty} empty skipped)"
        )

    def __str__(self) -> str:
        return f"{self.parsed} parsed, {self.skipped} skipped, {self.empty} empty"


class Importer(ABC):
    """Base class for one export format."""

    source_name: str = ""

    @abstractmethod
    def can_import(self, path: Path) -> bool:
        """
        Return True if this importer recognizes `path`.

        Args:
            path: A file or directory, either a scan root or one entry
                directly beneath it.
        """

    @abstractmethod
    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Parse every message available at `path`.

        Args:
            path: A path previously accepted by can_import.
            context: Per-run identity knowledge. A fresh empty context is
                used when None.

        Returns:
            Messages in source order.

        Raises:
            FileNotFoundError: If the path or the files it needs are missing.
            ValueError: If the source as a whole cannot be parsed.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source_name={self.source_name!r})"
