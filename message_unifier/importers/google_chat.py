"""
Importer for Google Chat (Takeout) group exports.

Layout (any of the candidate roots below, compared case-insensitively):

    Google Chat/Groups/<conversation>/messages.json
    Google Chat/Groups/<conversation>/group_info.json   (optional)

messages.json is either a bare array or {"messages": [...]}:

    {"creator": {"name": "Alice", "email": "alice@x.com", "user_type": "Human"},
     "created_date": "Monday, January 2, 2023 at 3:04:05 PM UTC",
     "text": "hello",
     "attached_files": [{"original_name": "a.png", "export_name": "File-a.png"}]}

The format never says which creator is the account owner, so the import
is two passes: every conversation of the source is pre-scanned for
creator emails, the identity resolver picks the owner, and only then are
messages mapped and classified.
"""

import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from message_unifier.importers.base import RECORD_ERRORS, Importer, ParseStats
from message_unifier.importers.identity import (
    ImportContext,
    classify_direction,
    resolve_local_identity,
)
from message_unifier.importers.paths import child_dirs, find_child, resolve_relative
from message_unifier.importers.timestamps import coerce_timestamp
from message_unifier.models import UNKNOWN_NAME, Contact, MediaAttachment, Message, MessageDirection

logger = logging.getLogger(__name__)

# Tried in order; "" is the scanned path itself
CANDIDATE_GROUP_DIRS = (
    "Google Chat/Groups",
    "Groups",
    "Takeout/Google Chat/Groups",
    "",
)

MESSAGES_FILE = "messages.json"
GROUP_INFO_FILE = "group_info.json"


def _first(mapping: Dict[str, Any], *keys: str) -> Optional[str]:
    """First non-empty string value among `keys`."""
    for key in keys:
        value = mapping.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _load_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class _Conversation:
    """One group directory, loaded once and read by both passes."""

    def __init__(self, directory: Path, raw_messages: List[Any], members: List[Dict[str, Any]]):
        self.directory = directory
        self.name = directory.name
        self.raw_messages = raw_messages
        self._members_by_id: Dict[str, Dict[str, Any]] = {}
        self._members_by_name: Dict[str, Dict[str, Any]] = {}
        for member in members:
            if not isinstance(member, dict):
                continue
            member_id = _first(member, "id", "user_id", "gaia_id")
            if member_id:
                self._members_by_id[member_id] = member
            member_name = _first(member, "name", "display_name", "fallback_name")
            if member_name:
                self._members_by_name.setdefault(member_name.casefold(), member)

    def creator(self, raw: Dict[str, Any]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """
        (user id, display name, email) for a message's creator.

        group_info.json members fill in whatever the creator object lacks,
        matched by id first and by name second.
        """
        creator = raw.get("creator") or {}
        if not isinstance(creator, dict):
            creator = {}
        user_id = _first(creator, "user_id", "id")
        name = _first(creator, "name", "display_name")
        email = _first(creator, "email")

        if email is None or name is None:
            member = None
            if user_id:
                member = self._members_by_id.get(user_id)
            if member is None and name:
                member = self._members_by_name.get(name.casefold())
            if member is not None:
                email = email or _first(member, "email", "user_email", "email_address")
                name = name or _first(member, "name", "display_name", "fallback_name")

        return user_id, name, email

    def creator_emails(self) -> List[Optional[str]]:
        return [self.creator(raw)[2] for raw in self.raw_messages if isinstance(raw, dict)]


class GoogleChatImporter(Importer):
    """Google Chat group and direct-message conversations from Takeout."""

    source_name = "Google Chat"

    def _groups_root(self, path: Path) -> Optional[Path]:
        """First candidate directory that holds at least one conversation."""
        if not path.is_dir():
            return None
        for candidate in CANDIDATE_GROUP_DIRS:
            resolved = path if not candidate else resolve_relative(path, candidate)
            if resolved is not None and resolved.is_dir() and self._conversation_dirs(resolved):
                return resolved
        return None

    @staticmethod
    def _conversation_dirs(groups_root: Path) -> List[Path]:
        if find_child(groups_root, MESSAGES_FILE) is not None:
            return [groups_root]
        return [d for d in child_dirs(groups_root) if find_child(d, MESSAGES_FILE) is not None]

    def can_import(self, path: Path) -> bool:
        try:
            return self._groups_root(path) is not None
        except OSError:
            return False

    def _load_conversation(self, directory: Path) -> _Conversation:
        document = _load_json(find_child(directory, MESSAGES_FILE))
        if isinstance(document, dict):
            raw_messages = document.get("messages") or []
        elif isinstance(document, list):
            raw_messages = document
        else:
            raise ValueError(f"Unexpected messages.json root in {directory}")

        members: List[Dict[str, Any]] = []
        info_path = find_child(directory, GROUP_INFO_FILE)
        if info_path is not None:
            try:
                info = _load_json(info_path)
                if isinstance(info, dict):
                    members = info.get("members") or []
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable {info_path}: {e}")

        return _Conversation(directory, list(raw_messages), members)

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Import every conversation under the first matching group directory.

        Raises:
            FileNotFoundError: If no candidate layout holds a messages.json.
            ValueError: If no conversation file could be decoded.
        """
        context = context or ImportContext()
        groups_root = self._groups_root(path)
        if groups_root is None:
            raise FileNotFoundError(f"No Google Chat conversations found under {path}")

        conversations: List[_Conversation] = []
        directories = self._conversation_dirs(groups_root)
        for directory in directories:
            try:
                conversations.append(self._load_conversation(directory))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
                logger.warning(f"{self.source_name}: skipping conversation {directory.name}: {e}")
        if directories and not conversations:
            raise ValueError(f"None of the {len(directories)} Google Chat conversations could be read")

        # Pass 1: who is the owner?
        resolution = resolve_local_identity(c.creator_emails() for c in conversations)
        context.record_resolution(str(path), resolution)
        identity = resolution.email

        # Pass 2: map and classify
        stats = ParseStats(self.source_name)
        messages: List[Message] = []
        for conversation in conversations:
            recipient = Contact.from_name(conversation.name)
            for raw in conversation.raw_messages:
                try:
                    message = self._parse_message(raw, conversation, recipient, identity, context)
                except RECORD_ERRORS as e:
                    stats.record_skip(e, detail=conversation.name)
                    continue
                if message is None:
                    stats.empty += 1
                    continue
                messages.append(message)

        stats.parsed = len(messages)
        stats.log_summary(path)
        return messages

    def _direction(self, email: Optional[str], identity: Optional[str], context: ImportContext) -> MessageDirection:
        if identity is not None:
            return classify_direction(email, identity)
        # No resolved owner; configured owner emails still count
        if email and context.user_emails:
            return MessageDirection.SENT if context.is_user_email(email) else MessageDirection.RECEIVED
        return MessageDirection.UNKNOWN

    def _parse_message(
        self,
        raw: Dict[str, Any],
        conversation: _Conversation,
        recipient: Contact,
        identity: Optional[str],
        context: ImportContext,
    ) -> Optional[Message]:
        if not isinstance(raw, dict):
            raise TypeError(f"message is {type(raw).__name__}, not an object")

        stamp = raw.get("created_date")
        if stamp is None or stamp == "":
            stamp = raw.get("timestamp")
        if stamp is None:
            raise KeyError("created_date")
        timestamp = coerce_timestamp(stamp)

        body = raw.get("text")
        if body is None:
            body = raw.get("content")
        body = body if isinstance(body, str) else ""

        attachments = []
        for item in raw.get("attached_files") or []:
            if not isinstance(item, dict):
                continue
            export_name = _first(item, "export_name", "original_name")
            if export_name:
                mime_type = mimetypes.guess_type(export_name)[0] or "application/octet-stream"
                attachments.append(MediaAttachment(export_name, mime_type))

        if not body and not attachments:
            return None

        user_id, name, email = conversation.creator(raw)
        if email:
            sender = Contact.from_email(name, email)
        else:
            sender = Contact.from_name(name or user_id or UNKNOWN_NAME)

        return Message(
            source_application=self.source_name,
            sender=sender,
            recipient=recipient,
            timestamp_utc=timestamp,
            body=body,
            direction=self._direction(email, identity, context),
            attachments=tuple(attachments),
        )
