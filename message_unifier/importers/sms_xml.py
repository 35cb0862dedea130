"""
Importer for Android "SMS Backup & Restore" XML files.

File layout:
    <smses count="...">
      <sms address="+15551234567" date="1700000000000" type="2"
           body="hi" contact_name="Alice" />
      <mms date="1700000000" msg_box="1" contact_name="Alice">
        <parts>
          <part ct="application/smil" ... />
          <part ct="text/plain" text="see photo" />
          <part ct="image/jpeg" name="photo.jpg" data="base64..." />
        </parts>
        <addrs>
          <addr address="+15551234567" type="137" />
        </addrs>
      </mms>
    </smses>

Design Decisions:
    1. sms `date` is milliseconds and mms `date` is seconds; both still go
       through the shared timestamp normalizer
    2. type / msg_box: 1 = received, 2 = sent, anything else unknown
    3. The backup has no local address, so the local side is "Me"
    4. Backups run to gigabytes, so the file is streamed with iterparse and
       each element is cleared once it has been mapped
    5. A record with neither text nor attachments (including an MMS whose
       only part is the SMIL layout) is skipped and counted as empty
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Tuple

from message_unifier.importers.base import RECORD_ERRORS, Importer, ParseStats
from message_unifier.importers.identity import ImportContext
from message_unifier.importers.paths import has_suffix
from message_unifier.importers.timestamps import from_epoch
from message_unifier.models import (
    SELF_NAME,
    Contact,
    MediaAttachment,
    Message,
    MessageDirection,
)

logger = logging.getLogger(__name__)

ROOT_TAG = "smses"

# Values the backup app writes when it could not find a contact name
_PLACEHOLDER_NAMES = {"", "(unknown)", "null"}

# PDU address types: 137 = from, 151 = to
MMS_ADDR_FROM = "137"
MMS_ADDR_TO = "151"

_DIRECTION_CODES = {
    "1": MessageDirection.RECEIVED,
    "2": MessageDirection.SENT,
}


def _direction_from_code(code: Optional[str]) -> MessageDirection:
    return _DIRECTION_CODES.get((code or "").strip(), MessageDirection.UNKNOWN)


def _contact_name(raw: Optional[str]) -> Optional[str]:
    """Contact name, or None when the backup only has a placeholder."""
    if raw is None or raw.strip().casefold() in _PLACEHOLDER_NAMES:
        return None
    return raw.strip()


def _orient(
    counterpart: Contact, direction: MessageDirection
) -> Tuple[Contact, Contact]:
    """Return (sender, recipient) given the remote party and direction."""
    me = Contact.from_name(SELF_NAME)
    if direction == MessageDirection.SENT:
        return me, counterpart
    return counterpart, me


class SmsXmlImporter(Importer):
    """Imports SMS and MMS records from an SMS Backup & Restore XML file."""

    source_name = "Android SMS Backup & Restore"

    def can_import(self, path: Path) -> bool:
        if not path.is_file() or not has_suffix(path, ".xml"):
            return False
        try:
            for _event, elem in ET.iterparse(str(path), events=("start",)):
                return elem.tag == ROOT_TAG
        except (ET.ParseError, OSError):
            return False
        return False

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        """
        Stream every <sms> and <mms> record out of the backup.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the XML is malformed or its root is not <smses>.
        """
        if not path.is_file():
            raise FileNotFoundError(f"SMS backup not found: {path}")

        stats = ParseStats(self.source_name)
        messages: List[Message] = []
        root: Optional[ET.Element] = None

        try:
            for event, elem in ET.iterparse(str(path), events=("start", "end")):
                if event == "start":
                    if root is None:
                        root = elem
                        if elem.tag != ROOT_TAG:
                            raise ValueError(f"Not an SMS backup (root <{elem.tag}>): {path}")
                    continue

                if elem.tag not in ("sms", "mms"):
                    continue

                try:
                    message = self._parse_sms(elem) if elem.tag == "sms" else self._parse_mms(elem)
                except RECORD_ERRORS as e:
                    stats.record_skip(e, detail=elem.tag)
                else:
                    if message is None:
                        stats.empty += 1
                    else:
                        messages.append(message)
                        stats.parsed += 1
                finally:
                    # Drop the finished record so memory stays flat
                    elem.clear()
                    if root is not None:
                        root.clear()
        except ET.ParseError as e:
            raise ValueError(f"Invalid SMS backup XML in {path}: {e}") from e

        stats.log_summary(path)
        return messages

    def _parse_sms(self, elem: ET.Element) -> Optional[Message]:
        address = (elem.get("address") or "").strip()
        timestamp = from_epoch(elem.attrib["date"])
        direction = _direction_from_code(elem.get("type"))

        body = elem.get("body") or ""
        if not body:
            return None

        name = _contact_name(elem.get("contact_name"))
        counterpart = Contact.from_phone(name, address) if address else Contact.from_name(name)
        sender, recipient = _orient(counterpart, direction)

        return Message(
            source_application=self.source_name,
            sender=sender,
            recipient=recipient,
            timestamp_utc=timestamp,
            body=body,
            direction=direction,
        )

    def _parse_mms(self, elem: ET.Element) -> Optional[Message]:
        timestamp = from_epoch(elem.attrib["date"])
        direction = _direction_from_code(elem.get("msg_box"))

        body_parts: List[str] = []
        attachments: List[MediaAttachment] = []
        for index, part in enumerate(elem.iter("part")):
            content_type = (part.get("ct") or "").strip()
            lowered = content_type.lower()
            if lowered.startswith("application/smil"):
                continue
            if lowered.startswith("text/"):
                text = part.get("text")
                if text and text != "null":
                    body_parts.append(text)
                continue
            source_path = (
                _contact_name(part.get("name"))
                or _contact_name(part.get("cl"))
                or f"attachment_{index}"
            )
            attachments.append(MediaAttachment(source_path, content_type or "application/octet-stream"))

        body = "".join(body_parts)
        if not body and not attachments:
            return None

        address = self._mms_address(elem, direction)
        name = _contact_name(elem.get("contact_name"))
        counterpart = Contact.from_phone(name, address) if address else Contact.from_name(name)
        sender, recipient = _orient(counterpart, direction)

        return Message(
            source_application=self.source_name,
            sender=sender,
            recipient=recipient,
            timestamp_utc=timestamp,
            body=body,
            direction=direction,
            attachments=tuple(attachments),
        )

    @staticmethod
    def _mms_address(elem: ET.Element, direction: MessageDirection) -> str:
        """
        Pick the remote party's address.

        Prefers the <addr> whose PDU type matches the direction (the sender
        of a received message, the recipient of a sent one), then the first
        <addr>, then the record's own `address` attribute.
        """
        wanted = MMS_ADDR_TO if direction == MessageDirection.SENT else MMS_ADDR_FROM
        addrs = [
            addr for addr in elem.iter("addr") if (addr.get("address") or "").strip()
        ]
        for addr in addrs:
            if addr.get("type") == wanted:
                return addr.get("address", "").strip()
        if addrs:
            return addrs[0].get("address", "").strip()
        # Multi-recipient sends store "a~b~c" on the record itself
        return (elem.get("address") or "").split("~")[0].strip()
