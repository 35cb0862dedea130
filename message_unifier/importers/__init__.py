"""
Source importers and auto-detection.

Each supported export format has one Importer subclass. The registry asks
every importer whether it recognizes a directory (or the files and
folders directly beneath it) and the pipeline runs the ones that do.

Architecture Overview:
    root directory
    └── ImporterRegistry.detect()  →  [(importer, source path), ...]
        └── run_import()           →  ImportReport (messages + outcomes)

Key Design Decisions:
    1. Importers are plain classes behind one interface; nothing inspects types
    2. All timestamps pass through importers.timestamps and come out in UTC
    3. Local-user knowledge travels in an explicit ImportContext
    4. A broken record is skipped; a broken source fails alone
"""

from message_unifier.importers.base import Importer, ParseStats
from message_unifier.importers.identity import (
    ImportContext,
    IdentityResolution,
    classify_direction,
    resolve_local_identity,
)
from message_unifier.importers.registry import (
    DetectionResult,
    ImporterRegistry,
    default_importers,
)
from message_unifier.importers.pipeline import (
    ImportReport,
    ImportStatus,
    SourceOutcome,
    run_import,
)

__all__ = [
    # Interface
    "Importer",
    "ParseStats",
    # Identity
    "ImportContext",
    "IdentityResolution",
    "classify_direction",
    "resolve_local_identity",
    # Detection
    "DetectionResult",
    "ImporterRegistry",
    "default_importers",
    # Pipeline
    "ImportReport",
    "ImportStatus",
    "SourceOutcome",
    "run_import",
]
