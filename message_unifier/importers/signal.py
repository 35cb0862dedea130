"""
Recognizer for Signal backup files (signal-YYYY-MM-DD-HH-MM-SS.backup).

Signal backups are encrypted with the 30-digit passphrase shown when
backups were enabled. This layer does not decrypt them; the importer
exists so such files are reported during detection and fail with a clear
message instead of being silently ignored.
"""

from pathlib import Path
from typing import List, Optional

from message_unifier.importers.base import Importer
from message_unifier.importers.identity import ImportContext
from message_unifier.importers.paths import has_suffix
from message_unifier.models import Message

BACKUP_PREFIX = "signal"
BACKUP_SUFFIX = ".backup"


class SignalBackupImporter(Importer):
    """Detects encrypted Signal backups; importing them always fails."""

    source_name = "Signal Backup"

    def can_import(self, path: Path) -> bool:
        return (
            path.is_file()
            and path.name.casefold().startswith(BACKUP_PREFIX)
            and has_suffix(path, BACKUP_SUFFIX)
        )

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Raises:
            FileNotFoundError: If the backup file does not exist.
            ValueError: Always otherwise; the backup is encrypted.
        """
        if not path.is_file():
            raise FileNotFoundError(f"Signal backup not found: {path}")
        raise ValueError(
            f"{path.name} is an encrypted Signal backup; decrypt it with an external "
            f"tool using your backup passphrase, then import the result"
        )
