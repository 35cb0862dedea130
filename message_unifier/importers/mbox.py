"""
Importer for mail archives in mbox format (Google Takeout "Mail").

Accepts a single .mbox file, a directory with Mail/*.mbox, or a directory
with *.mbox files directly inside it.

Design Decisions:
    1. Parsing uses the standard library mailbox and email packages with
       email.policy.default
    2. Body is the text/plain part; failing that the text/html part is
       converted to text with html2text. A subject is prefixed as
       "Subject: ...\\n\\n"
    3. Parts with a filename or an attachment disposition become attachments
    4. Direction, first match wins:
         a. From is a known owner address -> Sent (this includes mail the
            owner sent to themselves)
         b. To/Cc holds a known owner address -> Received
         c. Gmail label / folder headers naming a sent or inbox folder
         d. the mbox file name naming a sent or inbox folder
         e. Received
       Owner addresses are discovered in a pre-scan of Delivered-To style
       headers, and from the From of messages in sent folders, on top of
       any addresses in the import context. Discovered addresses apply to
       this import only
"""

import logging
import mailbox
import re
from datetime import timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesHeaderParser, BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

import html2text

from message_unifier.importers.base import RECORD_ERRORS, Importer, ParseStats
from message_unifier.importers.identity import ImportContext
from message_unifier.importers.paths import find_child, has_suffix, iter_files
from message_unifier.models import (
    SELF_NAME,
    UNKNOWN_NAME,
    Contact,
    MediaAttachment,
    Message,
    MessageDirection,
)
from message_unifier.normalizers import looks_like_email, normalize_display_name

logger = logging.getLogger(__name__)

LABEL_HEADERS = ("X-Gmail-Labels", "X-GM-LABELS", "X-Labels", "X-Folder", "X-Mailbox")
DELIVERY_HEADERS = ("Delivered-To", "X-Delivered-To", "X-Original-To", "X-Envelope-To", "X-Forwarded-To")

SENT_FOLDER_PATTERN = re.compile(r"\b(sent|sent mail|sent items|outbox|drafts?)\b", re.IGNORECASE)
INBOX_FOLDER_PATTERN = re.compile(r"\b(inbox|received|archive|all mail)\b", re.IGNORECASE)

Address = Tuple[str, str]


def html_to_text(html: str) -> str:
    """Render an HTML mail body as plain text."""
    converter = html2text.HTML2Text()
    converter.ignore_images = True
    converter.ignore_emphasis = True
    converter.body_width = 0  # Don't wrap lines
    return converter.handle(html).strip()


def _addresses(msg: EmailMessage, *headers: str) -> List[Address]:
    """(display name, lowercased address) pairs from the named headers, in order."""
    values = []
    for header in headers:
        values.extend(str(value) for value in msg.get_all(header, []))
    return [
        (name.strip(), addr.strip().lower())
        for name, addr in getaddresses(values)
        if addr and "@" in addr
    ]


def _labels(msg: EmailMessage) -> str:
    return " ".join(str(msg.get(header, "")) for header in LABEL_HEADERS)


def _folder_direction(text: str) -> Optional[MessageDirection]:
    # Folder names may use underscores in place of spaces
    text = text.replace("_", " ")
    if SENT_FOLDER_PATTERN.search(text):
        return MessageDirection.SENT
    if INBOX_FOLDER_PATTERN.search(text):
        return MessageDirection.RECEIVED
    return None


def _decode_part(part: EmailMessage) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeError, KeyError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def extract_body(msg: EmailMessage) -> str:
    plain = msg.get_body(preferencelist=("plain",))
    if plain is not None:
        text = _decode_part(plain)
        if text.strip():
            return text.strip()
    html = msg.get_body(preferencelist=("html",))
    if html is not None:
        return html_to_text(_decode_part(html))
    return ""


def extract_attachments(msg: EmailMessage) -> List[MediaAttachment]:
    attachments = []
    for index, part in enumerate(msg.walk()):
        if part.is_multipart():
            continue
        filename = part.get_filename()
        if filename or part.get_content_disposition() == "attachment":
            attachments.append(MediaAttachment(filename or f"attachment_{index}", part.get_content_type()))
    return attachments


def _contact(address: Optional[Address], fallback_name: str) -> Contact:
    if address is None:
        return Contact.from_name(fallback_name)
    name, email = address
    return Contact.from_email(normalize_display_name(name) or email, email)


class MboxImporter(Importer):
    """Mail archives in mbox format."""

    source_name = "Google Mail (Mbox)"

    def _mbox_files(self, path: Path) -> List[Path]:
        if path.is_file():
            return [path] if has_suffix(path, ".mbox") else []
        if not path.is_dir():
            return []
        mail_dir = find_child(path, "Mail")
        if mail_dir is not None and mail_dir.is_dir():
            found = list(iter_files(mail_dir, "*.mbox", recursive=True))
            if found:
                return found
        return list(iter_files(path, "*.mbox"))

    def can_import(self, path: Path) -> bool:
        try:
            return bool(self._mbox_files(path))
        except OSError:
            return False

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Raises:
            FileNotFoundError: If no .mbox file exists at `path`.
        """
        context = context or ImportContext()
        mbox_files = self._mbox_files(path)
        if not mbox_files:
            raise FileNotFoundError(f"No .mbox files found at {path}")

        user_emails = set(context.user_emails)
        for mbox_file in mbox_files:
            user_emails.update(self._discover_user_emails(mbox_file))
        if user_emails:
            logger.info(f"{self.source_name}: owner addresses: {', '.join(sorted(user_emails))}")

        stats = ParseStats(self.source_name)
        messages: List[Message] = []
        for mbox_file in mbox_files:
            for msg in self._iter_messages(mbox_file, BytesParser(policy=policy.default)):
                try:
                    messages.append(self._parse_message(msg, mbox_file, user_emails))
                except RECORD_ERRORS as e:
                    stats.record_skip(e, detail=mbox_file.name)

        stats.parsed = len(messages)
        stats.log_summary(path)
        return messages

    @staticmethod
    def _iter_messages(mbox_file: Path, parser) -> Iterator[EmailMessage]:
        box = mailbox.mbox(str(mbox_file), create=False)
        try:
            for key in box.iterkeys():
                yield parser.parsebytes(box.get_bytes(key))
        finally:
            box.close()

    def _discover_user_emails(self, mbox_file: Path) -> Set[str]:
        """Header-only pre-scan for addresses that belong to the account owner."""
        found: Set[str] = set()
        folder = _folder_direction(mbox_file.stem)
        for msg in self._iter_messages(mbox_file, BytesHeaderParser(policy=policy.default)):
            try:
                found.update(addr for _name, addr in _addresses(msg, *DELIVERY_HEADERS))
                if (_folder_direction(_labels(msg)) or folder) == MessageDirection.SENT:
                    found.update(addr for _name, addr in _addresses(msg, "From")[:1])
            except RECORD_ERRORS as e:
                logger.debug(f"{self.source_name}: unreadable headers in {mbox_file.name}: {e}")
        return {addr for addr in found if looks_like_email(addr)}

    def _direction(
        self,
        msg: EmailMessage,
        mbox_file: Path,
        sender: Optional[Address],
        recipients: List[Address],
        user_emails: Set[str],
    ) -> MessageDirection:
        direction = _folder_direction(_labels(msg)) or _folder_direction(mbox_file.stem)
        from_owner = sender is not None and sender[1] in user_emails
        to_owner = any(addr in user_emails for _name, addr in recipients)

        # Owner addresses in the message outrank the folder guess; mail the
        # owner sent to themselves counts as sent
        if from_owner:
            return MessageDirection.SENT
        if to_owner:
            return MessageDirection.RECEIVED
        # Nothing better to go on
        return direction or MessageDirection.RECEIVED

    def _parse_message(self, msg: EmailMessage, mbox_file: Path, user_emails: Set[str]) -> Message:
        date_header = msg.get("Date")
        if not date_header:
            raise KeyError("Date")
        timestamp = parsedate_to_datetime(str(date_header))
        if timestamp is None:
            raise ValueError(f"Unparseable Date header: {date_header!r}")
        if timestamp.tzinfo is None:
            # "-0000" means UTC with unknown local zone
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        senders = _addresses(msg, "From")
        sender_address = senders[0] if senders else None
        recipients = _addresses(msg, "To", "Cc")
        direction = self._direction(msg, mbox_file, sender_address, recipients, user_emails)

        if direction == MessageDirection.SENT:
            sender = _contact(sender_address, SELF_NAME)
            others = [a for a in recipients if a[1] not in user_emails]
            recipient = _contact(others[0] if others else (recipients[0] if recipients else None), UNKNOWN_NAME)
        else:
            sender = _contact(sender_address, UNKNOWN_NAME)
            owner = next((a for a in recipients if a[1] in user_emails), None)
            if owner is not None:
                recipient = Contact.from_email(SELF_NAME, owner[1])
            else:
                recipient = _contact(recipients[0] if recipients else None, SELF_NAME)

        subject = str(msg.get("Subject", "") or "").strip()
        body = extract_body(msg)
        if subject:
            body = f"Subject: {subject}\n\n{body}"

        return Message(
            source_application=self.source_name,
            sender=sender,
            recipient=recipient,
            timestamp_utc=timestamp,
            body=body,
            direction=direction,
            attachments=tuple(extract_attachments(msg)),
        )
