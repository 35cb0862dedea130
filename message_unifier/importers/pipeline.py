"""
Import pipeline: detect sources under a root and import them.

Pipeline Steps:
    1. Detect (importer, source path) pairs under the root
    2. Optionally narrow to user-selected source names
    3. Run each importer, sequentially or in a thread pool
    4. Concatenate messages in detection order
    5. Classify the run: OK, PARTIAL, ALL_FAILED or NO_SOURCES

A source whose importer raises is logged as a warning and recorded as a
failed outcome; the other sources still run. Nothing here exits the
process.
"""

import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from message_unifier.importers.identity import ImportContext
from message_unifier.importers.registry import Detection, DetectionResult, ImporterRegistry
from message_unifier.models import Message

logger = logging.getLogger(__name__)


class ImportStatus(str, enum.Enum):
    """Overall result of an import run."""

    OK = "ok"
    PARTIAL = "partial"
    ALL_FAILED = "all_failed"
    NO_SOURCES = "no_sources"


@dataclass
class SourceOutcome:
    """Result of importing one detected source."""

    source_name: str
    source_path: Path
    message_count: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        if self.succeeded:
            return f"{self.source_name} ({self.source_path}): {self.message_count} messages"
        return f"{self.source_name} ({self.source_path}): FAILED: {self.error}"


@dataclass
class ImportReport:
    """Messages plus per-source outcomes of one run."""

    root: Path
    status: ImportStatus
    messages: List[Message] = field(default_factory=list)
    outcomes: List[SourceOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def failed(self) -> List[SourceOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    def __str__(self) -> str:
        lines = [f"Import {self.status.value.upper()} under {self.root}"]
        if self.status == ImportStatus.NO_SOURCES:
            lines.append("  No importable sources were detected.")
        for outcome in self.outcomes:
            lines.append(f"  {outcome}")
        lines.append(f"  Messages: {len(self.messages)}")
        lines.append(f"  Duration: {self.duration_seconds:.2f}s")
        return "\n".join(lines)


def _classify(outcomes: List[SourceOutcome]) -> ImportStatus:
    if not outcomes:
        return ImportStatus.NO_SOURCES
    succeeded = sum(1 for o in outcomes if o.succeeded)
    if succeeded == 0:
        return ImportStatus.ALL_FAILED
    if succeeded < len(outcomes):
        return ImportStatus.PARTIAL
    return ImportStatus.OK


def _run_one(detection: Detection, context: ImportContext):
    """Import one source, turning any failure into a failed outcome."""
    start = time.time()
    try:
        messages = detection.importer.import_messages(detection.source_path, context)
    except Exception as e:
        logger.warning(f"Import of {detection} failed: {e}")
        logger.debug("Import failure details", exc_info=True)
        outcome = SourceOutcome(
            source_name=detection.source_name,
            source_path=detection.source_path,
            error=str(e) or type(e).__name__,
            duration_seconds=time.time() - start,
        )
        return [], outcome

    outcome = SourceOutcome(
        source_name=detection.source_name,
        source_path=detection.source_path,
        message_count=len(messages),
        duration_seconds=time.time() - start,
    )
    return messages, outcome


def import_detected(
    detected: DetectionResult,
    context: Optional[ImportContext] = None,
    max_workers: int = 1,
) -> ImportReport:
    """
    Import every detection in `detected`.

    Args:
        detected: Output of ImporterRegistry.detect (possibly narrowed).
        context: Shared identity context; a fresh one when None.
        max_workers: Thread pool size; 1 runs sources one after another.

    Returns:
        ImportReport with messages in detection order.
    """
    start = time.time()
    context = context or ImportContext()
    detections = list(detected)

    if max_workers > 1 and len(detections) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # map() yields in submission order, so detection order is kept
            results = list(executor.map(lambda d: _run_one(d, context), detections))
    else:
        results = [_run_one(detection, context) for detection in detections]

    messages: List[Message] = []
    outcomes: List[SourceOutcome] = []
    for source_messages, outcome in results:
        messages.extend(source_messages)
        outcomes.append(outcome)

    report = ImportReport(
        root=detected.root,
        status=_classify(outcomes),
        messages=messages,
        outcomes=outcomes,
        duration_seconds=time.time() - start,
    )
    if report.status == ImportStatus.NO_SOURCES:
        logger.warning(f"No importable sources found under {detected.root}")
    elif report.status == ImportStatus.ALL_FAILED:
        logger.warning(f"All {len(outcomes)} detected source(s) under {detected.root} failed to import")
    else:
        logger.info(f"Imported {len(messages)} message(s) from {len(outcomes) - len(report.failed)} source(s)")
    return report


def run_import(
    root: Path,
    registry: Optional[ImporterRegistry] = None,
    context: Optional[ImportContext] = None,
    only: Optional[Iterable[str]] = None,
    max_workers: int = 1,
) -> ImportReport:
    """
    Detect sources under `root` and import them.

    Args:
        root: Directory to scan.
        registry: Importers to use; the default set when None.
        context: Shared identity context.
        only: Source names to import; every detected source when None.
        max_workers: Thread pool size.

    Raises:
        FileNotFoundError: If root is not an existing directory.
    """
    registry = registry or ImporterRegistry()
    detected = registry.detect(Path(root)).select(only)
    return import_detected(detected, context=context, max_workers=max_workers)
