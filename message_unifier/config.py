"""
Configuration module for Message Unifier.

Handles settings for imports and contact merging.

Environment Variables:
    MESSAGE_UNIFIER_DECISIONS_PATH: Merge decision log
        (default ~/.message_unifier/merge_decisions.json)
    MESSAGE_UNIFIER_USER_EMAILS: Comma-separated addresses of the account owner
    MESSAGE_UNIFIER_USER_NAMES: Comma-separated display names of the account owner
    MESSAGE_UNIFIER_MAX_WORKERS: Sources imported in parallel (default 1)
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from message_unifier.importers.identity import ImportContext

logger = logging.getLogger(__name__)

ENV_DECISIONS_PATH = "MESSAGE_UNIFIER_DECISIONS_PATH"
ENV_USER_EMAILS = "MESSAGE_UNIFIER_USER_EMAILS"
ENV_USER_NAMES = "MESSAGE_UNIFIER_USER_NAMES"
ENV_MAX_WORKERS = "MESSAGE_UNIFIER_MAX_WORKERS"


def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Configuration class for Message Unifier."""

    # Default location of our own data
    DEFAULT_DATA_PATH = Path.home() / ".message_unifier"
    DEFAULT_DECISIONS_NAME = "merge_decisions.json"

    DEFAULT_MAX_WORKERS = 1
    DEFAULT_NAME_SIMILARITY_THRESHOLD = 0.92

    def __init__(
        self,
        decisions_path: Optional[str] = None,
        user_emails: Optional[Iterable[str]] = None,
        user_names: Optional[Iterable[str]] = None,
        max_workers: Optional[int] = None,
        name_similarity_threshold: Optional[float] = None,
    ):
        """
        Initialize configuration.

        Explicit arguments win over environment variables, which win over
        the defaults.

        Args:
            decisions_path: Path to the merge decision log.
            user_emails: Addresses known to belong to the account owner.
            user_names: Display names known to belong to the account owner.
            max_workers: Number of sources imported in parallel.
            name_similarity_threshold: Jaro-Winkler cut-off for fuzzy name
                matches when looking for duplicate contacts.
        """
        if decisions_path:
            self._decisions_path = Path(decisions_path)
        elif os.getenv(ENV_DECISIONS_PATH):
            self._decisions_path = Path(os.environ[ENV_DECISIONS_PATH])
        else:
            self._decisions_path = self.DEFAULT_DATA_PATH / self.DEFAULT_DECISIONS_NAME

        self._user_emails = list(user_emails) if user_emails is not None else _split_list(os.getenv(ENV_USER_EMAILS))
        self._user_names = list(user_names) if user_names is not None else _split_list(os.getenv(ENV_USER_NAMES))

        if max_workers is not None:
            self._max_workers = max_workers
        else:
            self._max_workers = self._read_max_workers()
        if self._max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self._max_workers}")

        self._name_similarity_threshold = (
            name_similarity_threshold
            if name_similarity_threshold is not None
            else self.DEFAULT_NAME_SIMILARITY_THRESHOLD
        )
        if not 0.0 < self._name_similarity_threshold <= 1.0:
            raise ValueError(f"name_similarity_threshold must be in (0, 1], got {self._name_similarity_threshold}")

    def _read_max_workers(self) -> int:
        raw = os.getenv(ENV_MAX_WORKERS)
        if not raw:
            return self.DEFAULT_MAX_WORKERS
        try:
            return int(raw)
        except ValueError:
            # Invalid value, fall back to sequential imports
            logger.warning(f"Ignoring invalid {ENV_MAX_WORKERS}={raw!r}")
            return self.DEFAULT_MAX_WORKERS

    @property
    def decisions_path(self) -> Path:
        """Get the merge decision log path."""
        return self._decisions_path

    @property
    def decisions_path_str(self) -> str:
        """Get the merge decision log path as a string."""
        return str(self._decisions_path)

    @property
    def user_emails(self) -> List[str]:
        return list(self._user_emails)

    @property
    def user_names(self) -> List[str]:
        return list(self._user_names)

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def name_similarity_threshold(self) -> float:
        return self._name_similarity_threshold

    def new_import_context(self) -> ImportContext:
        """Fresh per-run context seeded with the configured owner identity."""
        return ImportContext(user_emails=self._user_emails, user_names=self._user_names)

    def ensure_data_dir(self) -> None:
        """
        Ensure the decision log's parent directory exists.

        Creates the directory if it doesn't exist.
        """
        self._decisions_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(decisions_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        decisions_path: Optional path to the merge decision log.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or decisions_path is not None:
        _config = Config(decisions_path)
    return _config


def set_config(config: Optional[Config]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use, or None to rebuild it on next access.
    """
    global _config
    _config = config
