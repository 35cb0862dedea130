"""
Importer for the legacy Google Hangouts Takeout export (Hangouts.json).

Two generations of the file exist; both are read:

    {"conversation_state": [                       # older
        {"conversation_state": {"conversation": {...}, "event": [...]}}]}
    {"conversations": [                            # newer
        {"conversation": {"conversation": {...}}, "events": [...]}]}

Inside a conversation:
    participant_data[].id.gaia_id / fallback_name
    self_conversation_state.self_read_state.participant_id.gaia_id  (owner)

Inside an event:
    sender_id.gaia_id
    timestamp                                   (microseconds, as a string)
    chat_message.message_content.segment[].text
    chat_message.message_content.attachment[].embed_item.plus_photo.url
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from message_unifier.importers.base import RECORD_ERRORS, Importer, ParseStats
from message_unifier.importers.identity import ImportContext
from message_unifier.importers.paths import first_existing
from message_unifier.importers.timestamps import from_epoch_micros
from message_unifier.models import Contact, MediaAttachment, Message, MessageDirection

logger = logging.getLogger(__name__)

CANDIDATE_FILES = (
    "Hangouts/Hangouts.json",
    "Hangouts.json",
    "Takeout/Hangouts/Hangouts.json",
)

DEFAULT_CONVERSATION_NAME = "Hangouts Conversation"


def _dig(node: Any, *keys: str) -> Any:
    """Follow nested dict keys, returning None at the first miss."""
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _iter_conversations(document: Dict[str, Any]) -> Iterator[Tuple[Dict[str, Any], List[Any]]]:
    """Yield (conversation, events) for either file generation."""
    entries = document.get("conversation_state")
    if entries is None:
        entries = document.get("conversations")
    if not isinstance(entries, list):
        raise ValueError("Hangouts.json has neither 'conversation_state' nor 'conversations'")

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        state = entry.get("conversation_state", entry)
        if not isinstance(state, dict):
            continue
        conversation = state.get("conversation") or {}
        if "participant_data" not in conversation and isinstance(conversation.get("conversation"), dict):
            conversation = conversation["conversation"]
        events = state.get("event") or entry.get("events") or []
        yield conversation, events


class HangoutsImporter(Importer):
    """Google Hangouts conversations from a Takeout Hangouts.json."""

    source_name = "Google Hangouts"

    def _locate(self, path: Path) -> Optional[Path]:
        if path.is_file():
            return path if path.name.casefold() == "hangouts.json" else None
        if path.is_dir():
            return first_existing(path, CANDIDATE_FILES)
        return None

    def can_import(self, path: Path) -> bool:
        try:
            return self._locate(path) is not None
        except OSError:
            return False

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Raises:
            FileNotFoundError: If no Hangouts.json exists at the candidate paths.
            ValueError: If the file is not valid Hangouts JSON.
        """
        hangouts_file = self._locate(path)
        if hangouts_file is None:
            raise FileNotFoundError(f"No Hangouts.json found under {path}")

        try:
            with open(hangouts_file, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {hangouts_file}: {e}") from e
        if not isinstance(document, dict):
            raise ValueError(f"Unexpected Hangouts.json root in {hangouts_file}")

        stats = ParseStats(self.source_name)
        messages: List[Message] = []
        for conversation, events in _iter_conversations(document):
            participants = self._participants(conversation)
            self_id = _dig(conversation, "self_conversation_state", "self_read_state", "participant_id", "gaia_id")
            recipient = Contact.from_name(self._conversation_name(conversation, participants, self_id))

            for event in events:
                try:
                    message = self._parse_event(event, participants, self_id, recipient)
                except RECORD_ERRORS as e:
                    stats.record_skip(e, detail="event")
                    continue
                if message is None:
                    stats.empty += 1
                    continue
                messages.append(message)

        stats.parsed = len(messages)
        stats.log_summary(hangouts_file)
        return messages

    @staticmethod
    def _participants(conversation: Dict[str, Any]) -> Dict[str, str]:
        """gaia id -> display name (the id itself when no name is known)."""
        participants: Dict[str, str] = {}
        for participant in conversation.get("participant_data") or []:
            gaia_id = _dig(participant, "id", "gaia_id")
            if not gaia_id:
                continue
            name = (participant.get("fallback_name") or "").strip()
            participants[str(gaia_id)] = name or str(gaia_id)
        return participants

    @staticmethod
    def _conversation_name(conversation: Dict[str, Any], participants: Dict[str, str], self_id: Optional[str]) -> str:
        name = (conversation.get("name") or "").strip()
        if name:
            return name
        others = [n for gaia_id, n in participants.items() if gaia_id != self_id]
        return ", ".join(others) or DEFAULT_CONVERSATION_NAME

    def _parse_event(
        self,
        event: Dict[str, Any],
        participants: Dict[str, str],
        self_id: Optional[str],
        recipient: Contact,
    ) -> Optional[Message]:
        timestamp = from_epoch_micros(event["timestamp"])
        sender_id = _dig(event, "sender_id", "gaia_id")
        content = _dig(event, "chat_message", "message_content") or {}

        body = "".join(
            segment.get("text") or ""
            for segment in content.get("segment") or []
            if isinstance(segment, dict)
        )

        attachments = []
        for attachment in content.get("attachment") or []:
            photo = _dig(attachment, "embed_item", "plus_photo")
            if not isinstance(photo, dict) or not photo.get("url"):
                continue
            mime_type = "video/mp4" if photo.get("media_type") == "VIDEO" else "image/jpeg"
            attachments.append(MediaAttachment(photo["url"], mime_type))

        if not body and not attachments:
            return None

        if self_id and sender_id:
            direction = MessageDirection.SENT if sender_id == self_id else MessageDirection.RECEIVED
        else:
            direction = MessageDirection.UNKNOWN

        sender_name = participants.get(str(sender_id)) if sender_id else None
        sender = Contact.from_name(sender_name or (str(sender_id) if sender_id else None))

        return Message(
            source_application=self.source_name,
            sender=sender,
            recipient=recipient,
            timestamp_utc=timestamp,
            body=body,
            direction=direction,
            attachments=tuple(attachments),
        )
