"""
Importer registry and auto-detection.

Given a root directory, detection reports every (importer, source path)
pair that applies:

    - an importer that recognizes the root itself is reported once, for
      the root;
    - otherwise each file directly in the root, and each first-level
      subdirectory, that the importer recognizes is reported separately.

Several importers may match under one root. All matches are reported and
the caller decides which to run, so one broken or irrelevant source never
blocks the others.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from message_unifier.importers.base import Importer
from message_unifier.importers.google_chat import GoogleChatImporter
from message_unifier.importers.hangouts import HangoutsImporter
from message_unifier.importers.mbox import MboxImporter
from message_unifier.importers.signal import SignalBackupImporter
from message_unifier.importers.sms_xml import SmsXmlImporter
from message_unifier.importers.social_json import FacebookMessengerImporter, InstagramImporter

logger = logging.getLogger(__name__)


def default_importers() -> List[Importer]:
    """Every supported importer, in detection order."""
    return [
        SmsXmlImporter(),
        GoogleChatImporter(),
        HangoutsImporter(),
        FacebookMessengerImporter(),
        InstagramImporter(),
        MboxImporter(),
        SignalBackupImporter(),
    ]


@dataclass(frozen=True)
class Detection:
    """One importer matched against one source path."""

    importer: Importer
    source_path: Path

    @property
    def source_name(self) -> str:
        return self.importer.source_name

    def __str__(self) -> str:
        return f"{self.source_name} - {self.source_path.name or self.source_path}"


@dataclass
class DetectionResult:
    """Everything detection found under one root (possibly nothing)."""

    root: Path
    detections: List[Detection] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    @property
    def is_empty(self) -> bool:
        return not self.detections

    @property
    def source_names(self) -> List[str]:
        """Distinct source names, in detection order."""
        seen: List[str] = []
        for detection in self.detections:
            if detection.source_name not in seen:
                seen.append(detection.source_name)
        return seen

    def select(self, names: Optional[Iterable[str]]) -> "DetectionResult":
        """
        Keep only detections whose source name is in `names` (case-insensitive).

        None keeps everything.
        """
        if names is None:
            return self
        wanted = {name.casefold() for name in names}
        return DetectionResult(
            root=self.root,
            detections=[d for d in self.detections if d.source_name.casefold() in wanted],
        )

    def summary(self) -> str:
        if self.is_empty:
            return "No compatible importers detected in this directory."
        return "\n".join(str(detection) for detection in self.detections)


class ImporterRegistry:
    """Fixed list of importers, dispatched by their can_import predicate."""

    def __init__(self, importers: Optional[Sequence[Importer]] = None):
        self._importers: List[Importer] = list(importers) if importers is not None else default_importers()

    @property
    def importers(self) -> List[Importer]:
        return list(self._importers)

    def get(self, source_name: str) -> Optional[Importer]:
        """Look up an importer by source name, ignoring case."""
        wanted = source_name.casefold()
        for importer in self._importers:
            if importer.source_name.casefold() == wanted:
                return importer
        return None

    def detect(self, root: Path) -> DetectionResult:
        """
        Scan `root` and report every applicable (importer, source path).

        Args:
            root: Directory to scan.

        Returns:
            DetectionResult, empty when nothing was recognized.

        Raises:
            FileNotFoundError: If root is not an existing directory.
        """
        root = Path(root)
        if not root.is_dir():
            raise FileNotFoundError(f"Directory not found: {root}")

        entries = sorted(root.iterdir())
        files = [entry for entry in entries if entry.is_file()]
        subdirs = [entry for entry in entries if entry.is_dir()]

        result = DetectionResult(root=root)
        for importer in self._importers:
            if importer.can_import(root):
                result.detections.append(Detection(importer, root))
                continue
            for candidate in files + subdirs:
                if importer.can_import(candidate):
                    result.detections.append(Detection(importer, candidate))

        if result.is_empty:
            logger.info(f"No importable sources found under {root}")
        else:
            logger.info(f"Detected {len(result)} source(s) under {root}: {', '.join(result.source_names)}")
        return result
