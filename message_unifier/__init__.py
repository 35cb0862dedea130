"""
Message Unifier - normalize personal messaging exports into one model.

This package provides functionality to:
- Detect which exports live under a directory tree
- Import SMS, social-network, chat and mail exports as unified messages
- Infer the local user's identity in creator-only exports
- Find and merge duplicate contacts, remembering past decisions
"""

__version__ = "0.1.0"

from message_unifier.config import get_config, Config
from message_unifier.models import Contact, MediaAttachment, Message, MessageDirection

__all__ = [
    "get_config",
    "Config",
    "Contact",
    "MediaAttachment",
    "Message",
    "MessageDirection",
]
