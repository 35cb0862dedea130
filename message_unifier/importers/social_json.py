"""
Importers for Facebook Messenger and Instagram JSON exports.

Both services ship the same conversation format:

    <export>/.../messages/inbox/<thread>/message_1.json
    {
      "participants": [{"name": "Alice"}, {"name": "Bob"}],
      "title": "Alice",
      "messages": [
        {"sender_name": "Bob", "timestamp_ms": 1700000000000,
         "content": "hi", "photos": [{"uri": "messages/inbox/.../1.jpg"}],
         "share": {"link": "https://...", "share_text": "..."}}
      ]
    }

Design Decisions:
    1. Inboxes are found at messages/inbox, inbox, or any nested
       */messages/inbox, compared case-insensitively
    2. An inbox whose path mentions "instagram" (for example
       your_instagram_activity/messages/inbox) belongs to Instagram; every
       other inbox belongs to Facebook
    3. Facebook writes UTF-8 text as latin-1 escapes, so every string is run
       through ftfy before use
    4. Direction: a sender named "Me", or a name known to belong to the
       account owner, is Sent; everything else is Received. Owner names come
       from the import context, the export's own profile files, or the
       sender present in the most conversations (two or more, no tie)
"""

import json
import logging
from abc import abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

import ftfy

from message_unifier.importers.base import RECORD_ERRORS, Importer, ParseStats
from message_unifier.importers.identity import ImportContext
from message_unifier.importers.paths import iter_files, resolve_relative
from message_unifier.importers.timestamps import from_epoch
from message_unifier.normalizers import looks_like_email
from message_unifier.models import (
    SELF_NAME,
    UNKNOWN_NAME,
    Contact,
    MediaAttachment,
    Message,
    MessageDirection,
)

logger = logging.getLogger(__name__)

# (JSON key, MIME type) for each attachment list a message may carry
ATTACHMENT_KINDS = (
    ("photos", "image/jpeg"),
    ("videos", "video/mp4"),
    ("audio_files", "audio/mpeg"),
    ("files", "application/octet-stream"),
    ("gifs", "image/gif"),
)

PROFILE_FILE_NAMES = {
    "profile_information.json",
    "personal_information.json",
    "contact_info.json",
}

INSTAGRAM_MARKER = "instagram"

# Profile sections that name other people rather than the owner
PROFILE_SKIP_MARKERS = ("family", "relationship", "friend", "partner", "blocked")

# Minimum number of conversations a sender must appear in to be taken as the owner
MIN_OWNER_CONVERSATIONS = 2


def fix_text(value: Any) -> str:
    """Repair mojibake in an exported string; non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return ftfy.fix_text(value)


def find_inboxes(root: Path) -> List[Path]:
    """
    Every inbox directory under `root`, sorted and de-duplicated.

    Looks at messages/inbox and inbox directly beneath the root, then at
    any nested directory named inbox whose parent is named messages.
    """
    if not root.is_dir():
        return []

    found: Set[Path] = set()
    for candidate in ("messages/inbox", "inbox"):
        resolved = resolve_relative(root, candidate)
        if resolved is not None and resolved.is_dir():
            found.add(resolved)

    for directory in root.rglob("*"):
        if (
            directory.is_dir()
            and directory.name.casefold() == "inbox"
            and directory.parent.name.casefold() == "messages"
        ):
            found.add(directory)

    return sorted(found)


def is_instagram_inbox(root: Path, inbox: Path) -> bool:
    """True when the root's name or any segment down to the inbox mentions Instagram."""
    try:
        segments = (root.name,) + inbox.relative_to(root).parts
    except ValueError:
        segments = inbox.parts
    return any(INSTAGRAM_MARKER in segment.casefold() for segment in segments)


def _collect_profile_identity(node: Any, names: Set[str], emails: Set[str], key: str = "") -> None:
    """Walk a profile JSON document collecting owner names and emails."""
    lowered = key.casefold()
    if any(marker in lowered for marker in PROFILE_SKIP_MARKERS):
        return
    if isinstance(node, dict):
        # Instagram wraps values: {"Name": {"value": "Jane"}}
        value = node.get("value")
        if isinstance(value, str) and value.strip():
            _collect_profile_identity(value, names, emails, key)
        for child_key, child in node.items():
            if child_key == "value":
                continue
            _collect_profile_identity(child, names, emails, child_key)
    elif isinstance(node, list):
        for item in node:
            _collect_profile_identity(item, names, emails, key)
    elif isinstance(node, str) and node.strip():
        text = fix_text(node).strip()
        if looks_like_email(text):
            emails.add(text)
        elif "name" in lowered and "@" not in text:
            names.add(text)


def load_profile_identity(
    root: Path, include: Optional[Callable[[Path], bool]] = None
) -> Tuple[Set[str], Set[str]]:
    """
    Owner names and emails from the export's account information files.

    `include`, when given, limits the search to the profile files it accepts.
    Unreadable profile files are logged and ignored; they only add
    identity hints.
    """
    names: Set[str] = set()
    emails: Set[str] = set()
    if not root.is_dir():
        return names, emails

    for path in sorted(root.rglob("*.json")):
        if path.name.casefold() not in PROFILE_FILE_NAMES:
            continue
        if include is not None and not include(path):
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read profile file {path}: {e}")
            continue
        _collect_profile_identity(document, names, emails)

    if names or emails:
        logger.info(f"Loaded owner identity from profile files: names={sorted(names)} emails={sorted(emails)}")
    return names, emails


def detect_owner_name(senders_by_conversation: Dict[str, Set[str]]) -> Optional[str]:
    """
    Sender present in the most distinct conversations.

    Returns None when the best sender appears in fewer than two
    conversations or shares the top count with another sender.
    """
    presence: Counter = Counter()
    for senders in senders_by_conversation.values():
        presence.update({s.casefold() for s in senders if s and s != UNKNOWN_NAME})
    if not presence:
        return None

    ranked = presence.most_common()
    top_name, top_count = ranked[0]
    if top_count < MIN_OWNER_CONVERSATIONS:
        return None
    if len(ranked) > 1 and ranked[1][1] == top_count:
        return None
    return top_name


@dataclass
class _ParsedMessage:
    """A message mapped from JSON, waiting for its direction."""

    conversation: str
    sender_name: str
    recipient: Contact
    timestamp: Any
    body: str
    attachments: Tuple[MediaAttachment, ...] = field(default_factory=tuple)


class SocialExportImporter(Importer):
    """Shared implementation; subclasses choose which inboxes are theirs."""

    @abstractmethod
    def _owns_inbox(self, root: Path, inbox: Path) -> bool:
        """True when `inbox` (or a profile file) under `root` belongs to this service."""

    def _inboxes(self, path: Path) -> List[Path]:
        return [inbox for inbox in find_inboxes(path) if self._owns_inbox(path, inbox)]

    def can_import(self, path: Path) -> bool:
        try:
            return bool(self._inboxes(path))
        except OSError:
            return False

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Import every message_*.json under this source's inboxes.

        A conversation file that cannot be read or decoded is skipped with
        a warning; if every file fails the whole source fails.

        Raises:
            FileNotFoundError: If no inbox directory exists under `path`.
            ValueError: If none of the conversation files could be read.
        """
        context = context or ImportContext()
        inboxes = self._inboxes(path)
        if not inboxes:
            raise FileNotFoundError(f"No {self.source_name} inbox directory under {path}")

        # Only names help here: message records carry no sender emails
        profile_names, _profile_emails = load_profile_identity(path, lambda p: self._owns_inbox(path, p))

        stats = ParseStats(self.source_name)
        parsed: List[_ParsedMessage] = []
        senders_by_conversation: Dict[str, Set[str]] = {}
        files_seen = 0
        files_failed = 0

        for inbox in inboxes:
            for message_file in iter_files(inbox, "message_*.json", recursive=True):
                files_seen += 1
                try:
                    with open(message_file, "r", encoding="utf-8") as f:
                        document = json.load(f)
                except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                    files_failed += 1
                    logger.warning(f"{self.source_name}: skipping unreadable conversation {message_file}: {e}")
                    continue

                conversation_key = str(message_file.parent)
                for record in self._parse_conversation(document, conversation_key, stats):
                    parsed.append(record)
                    senders_by_conversation.setdefault(conversation_key, set()).add(record.sender_name)

        if files_seen and files_failed == files_seen:
            raise ValueError(f"None of the {files_seen} {self.source_name} conversation files could be read")

        owner_names = self._owner_names(context, profile_names, senders_by_conversation)
        messages = [self._to_message(record, owner_names) for record in parsed]
        stats.parsed = len(messages)
        stats.log_summary(path)
        return messages

    def _owner_names(
        self,
        context: ImportContext,
        profile_names: Set[str],
        senders_by_conversation: Dict[str, Set[str]],
    ) -> Set[str]:
        known = set(context.user_names) | {name.casefold() for name in profile_names}
        if known:
            return known
        detected = detect_owner_name(senders_by_conversation)
        if detected:
            logger.info(f"{self.source_name}: owner name inferred from conversation presence: {detected}")
            return {detected}
        logger.warning(
            f"{self.source_name}: could not determine the owner's name; "
            f"only senders named '{SELF_NAME}' will be marked sent"
        )
        return set()

    def _parse_conversation(
        self, document: Any, conversation_key: str, stats: ParseStats
    ) -> Iterable[_ParsedMessage]:
        if not isinstance(document, dict):
            stats.record_skip("conversation root is not an object", detail=conversation_key)
            return

        participants = [
            fix_text(p.get("name"))
            for p in document.get("participants") or []
            if isinstance(p, dict) and p.get("name")
        ]
        title = fix_text(document.get("title")).strip() or ", ".join(participants) or UNKNOWN_NAME
        recipient = Contact.from_name(title)

        for raw in document.get("messages") or []:
            try:
                record = self._parse_message(raw, conversation_key, recipient)
            except RECORD_ERRORS as e:
                stats.record_skip(e, detail=conversation_key)
                continue
            if record is None:
                stats.empty += 1
                continue
            yield record

    def _parse_message(
        self, raw: Dict[str, Any], conversation_key: str, recipient: Contact
    ) -> Optional[_ParsedMessage]:
        timestamp = from_epoch(raw["timestamp_ms"])
        sender_name = fix_text(raw.get("sender_name")).strip() or UNKNOWN_NAME

        lines = []
        content = fix_text(raw.get("content"))
        if content:
            lines.append(content)
        share = raw.get("share")
        if isinstance(share, dict):
            link = fix_text(share.get("link"))
            if link:
                lines.append(f"[Shared: {link}]")
            share_text = fix_text(share.get("share_text"))
            if share_text:
                lines.append(share_text)

        attachments = []
        for key, mime_type in ATTACHMENT_KINDS:
            for item in raw.get(key) or []:
                uri = item.get("uri") if isinstance(item, dict) else None
                if uri:
                    attachments.append(MediaAttachment(uri, mime_type))

        if not lines and not attachments:
            return None

        return _ParsedMessage(
            conversation=conversation_key,
            sender_name=sender_name,
            recipient=recipient,
            timestamp=timestamp,
            body="\n".join(lines),
            attachments=tuple(attachments),
        )

    def _to_message(self, record: _ParsedMessage, owner_names: Set[str]) -> Message:
        folded = record.sender_name.casefold()
        if folded == SELF_NAME.casefold() or folded in owner_names:
            direction = MessageDirection.SENT
        else:
            direction = MessageDirection.RECEIVED

        return Message(
            source_application=self.source_name,
            sender=Contact.from_name(record.sender_name),
            recipient=record.recipient,
            timestamp_utc=record.timestamp,
            body=record.body,
            direction=direction,
            attachments=record.attachments,
        )


class FacebookMessengerImporter(SocialExportImporter):
    """Facebook "Download Your Information" Messenger conversations."""

    source_name = "Facebook Messenger"

    def _owns_inbox(self, root: Path, inbox: Path) -> bool:
        return not is_instagram_inbox(root, inbox)


class InstagramImporter(SocialExportImporter):
    """Instagram data download direct-message conversations."""

    source_name = "Instagram"

    def _owns_inbox(self, root: Path, inbox: Path) -> bool:
        return is_instagram_inbox(root, inbox)
