"""
Pytest fixtures for Message Unifier tests.

This module builds small but realistic exports for every supported source
under tmp_path, so importer, registry, pipeline, CLI and API tests all run
against the same data.

Fixture Categories:
    1. Single-source exports (SMS backup, Facebook, Instagram, Google Chat,
       Hangouts, mbox, Signal)
    2. A mixed export root holding several sources at once
    3. Configuration isolation (global config reset, decision log path)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - Timestamps revolve around 1700000000 (2023-11-14T22:13:20Z)
    - Every export carries at least one malformed or empty record
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from message_unifier.config import set_config

# 2023-11-14T22:13:20Z
BASE_EPOCH = 1700000000
BASE_DATETIME = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def pytest_configure(config):
    config.addinivalue_line("markers", "property: hypothesis property-based tests")


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


# =============================================================================
# Configuration isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch, tmp_path: Path):
    """Keep every test away from ~/.message_unifier and the caller's env."""
    for name in (
        "MESSAGE_UNIFIER_USER_EMAILS",
        "MESSAGE_UNIFIER_USER_NAMES",
        "MESSAGE_UNIFIER_MAX_WORKERS",
        "MESSAGE_UNIFIER_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MESSAGE_UNIFIER_DECISIONS_PATH", str(tmp_path / "state" / "merge_decisions.json"))
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def decisions_path(tmp_path: Path) -> Path:
    """Decision log location the global config points at."""
    return tmp_path / "state" / "merge_decisions.json"


# =============================================================================
# SMS Backup & Restore
# =============================================================================

SMS_BACKUP_XML = """<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<smses count="4">
  <sms protocol="0" address="+15551234567" date="1700000000000" type="2"
       body="hi" read="1" status="-1" contact_name="Alice Smith" />
  <sms protocol="0" address="(555) 123-4567" date="1700000060000" type="1"
       body="hey yourself" read="1" status="-1" contact_name="(Unknown)" />
  <sms protocol="0" address="+15550000000" type="1" body="no date" contact_name="Broken" />
  <mms date="1700000120" msg_box="1" contact_name="Bob Jones" address="+15559876543">
    <parts>
      <part seq="-1" ct="application/smil" name="null" text="&lt;smil&gt;&lt;/smil&gt;" />
      <part seq="0" ct="image/jpeg" name="photo.jpg" cl="photo.jpg" data="/9j/4AAQ" />
    </parts>
    <addrs>
      <addr address="+15559876543" type="137" charset="106" />
      <addr address="+15551112222" type="151" charset="106" />
    </addrs>
  </mms>
</smses>
"""


@pytest.fixture
def sms_backup(tmp_path: Path) -> Path:
    """
    SMS backup with a sent SMS, a received SMS, a malformed SMS and a
    received MMS carrying one photo.

    Returns:
        Path to sms-20231115.xml.
    """
    path = tmp_path / "sms-20231115.xml"
    path.write_text(SMS_BACKUP_XML, encoding="utf-8")
    return path


# =============================================================================
# Facebook Messenger / Instagram
# =============================================================================


def _social_conversation(title: str, participants, messages) -> dict:
    return {
        "participants": [{"name": name} for name in participants],
        "title": title,
        "thread_path": f"inbox/{title.lower()}",
        "messages": messages,
    }


@pytest.fixture
def facebook_export(tmp_path: Path) -> Path:
    """
    Facebook "Download Your Information" tree with two conversations.

    Jane Doe (the owner) appears in both, so she is detected as the owner
    even without profile files. One file is corrupt and one message is
    empty.
    """
    root = tmp_path / "facebook-janedoe"
    inbox = root / "messages" / "inbox"
    write_json(
        inbox / "alicesmith_123" / "message_1.json",
        _social_conversation(
            "Alice Smith",
            ["Alice Smith", "Jane Doe"],
            [
                {"sender_name": "Jane Doe", "timestamp_ms": 1700000060000, "content": "See you there"},
                {
                    "sender_name": "Alice Smith",
                    "timestamp_ms": 1700000000000,
                    "content": "CafÃ© at 8?",
                    "photos": [{"uri": "messages/inbox/alicesmith_123/photos/1.jpg"}],
                },
                {"sender_name": "Alice Smith", "timestamp_ms": 1699999990000},
            ],
        ),
    )
    write_json(
        inbox / "bobjones_456" / "message_1.json",
        _social_conversation(
            "Bob Jones",
            ["Bob Jones", "Jane Doe"],
            [
                {
                    "sender_name": "Bob Jones",
                    "timestamp_ms": 1700000100000,
                    "share": {"link": "https://example.com/article"},
                },
                {"sender_name": "Jane Doe", "timestamp_ms": 1700000200000, "content": "thanks!"},
                {"sender_name": "Jane Doe", "content": "missing timestamp"},
            ],
        ),
    )
    broken = inbox / "broken_789" / "message_1.json"
    broken.parent.mkdir(parents=True, exist_ok=True)
    broken.write_text("{not json", encoding="utf-8")
    return root


@pytest.fixture
def instagram_export(tmp_path: Path) -> Path:
    """Instagram data download with a profile file naming the owner."""
    root = tmp_path / "instagram-jane"
    inbox = root / "your_instagram_activity" / "messages" / "inbox"
    write_json(
        inbox / "carol_1" / "message_1.json",
        _social_conversation(
            "carol",
            ["carol", "jane.doe"],
            [
                {"sender_name": "jane.doe", "timestamp_ms": 1700000300000, "content": "hey carol"},
                {
                    "sender_name": "carol",
                    "timestamp_ms": 1700000400000,
                    "videos": [{"uri": "your_instagram_activity/messages/inbox/carol_1/videos/v.mp4"}],
                },
            ],
        ),
    )
    write_json(
        root / "personal_information" / "personal_information" / "personal_information.json",
        {
            "profile_user": [
                {
                    "string_map_data": {
                        "Email": {"value": "jane@example.com"},
                        "Username": {"value": "jane.doe"},
                        "Name": {"value": "Jane Doe"},
                    }
                }
            ]
        },
    )
    return root


# =============================================================================
# Google Chat
# =============================================================================


def _chat_message(email: str, name: str, created: str, text: str = "", files=None) -> dict:
    message = {
        "creator": {"name": name, "email": email, "user_type": "Human"},
        "created_date": created,
        "text": text,
        "topic_id": "abc",
    }
    if files:
        message["attached_files"] = files
    return message


@pytest.fixture
def google_chat_export(tmp_path: Path) -> Path:
    """
    Takeout tree with three Google Chat conversations.

    a@x.com (the owner) is in all three, c@x.com in two and b@x.com in one.
    """
    root = tmp_path / "takeout-chat"
    groups = root / "Takeout" / "Google Chat" / "Groups"
    write_json(
        groups / "DM b" / "messages.json",
        {
            "messages": [
                _chat_message("a@x.com", "Ann", "Tuesday, November 14, 2023 at 10:13:20 PM UTC", "hi b"),
                _chat_message("b@x.com", "Ben", "2023-11-14T22:14:00Z", "hi ann"),
            ]
        },
    )
    write_json(
        groups / "Space Work" / "messages.json",
        {
            "messages": [
                _chat_message("c@x.com", "Cat", "2023-11-15T09:00:00Z", "standup?"),
                _chat_message(
                    "A@X.com",
                    "Ann",
                    "2023-11-15T09:01:00Z",
                    files=[{"original_name": "notes.pdf", "export_name": "File-notes.pdf"}],
                ),
                _chat_message("c@x.com", "Cat", "2023-11-15T09:02:00Z", ""),
                {"creator": {"email": "c@x.com"}, "text": "no date"},
            ]
        },
    )
    write_json(
        groups / "DM c" / "messages.json",
        [
            _chat_message("a@x.com", "Ann", "2023-11-16T10:00:00Z", "lunch?"),
            _chat_message("c@x.com", "Cat", "2023-11-16T10:05:00Z", "sure"),
        ],
    )
    return root


@pytest.fixture
def google_chat_tied_export(tmp_path: Path) -> Path:
    """Two one-to-one conversations with different creators: no owner can win."""
    groups = tmp_path / "chat-tied" / "Groups"
    write_json(
        groups / "one" / "messages.json",
        {"messages": [_chat_message("a@x.com", "Ann", "2023-11-14T22:13:20Z", "one")]},
    )
    write_json(
        groups / "two" / "messages.json",
        {"messages": [_chat_message("b@x.com", "Ben", "2023-11-14T22:13:21Z", "two")]},
    )
    return tmp_path / "chat-tied"


# =============================================================================
# Google Hangouts
# =============================================================================


def _hangouts_event(sender: str, micros: str, segments=None, photo_url=None) -> dict:
    content: dict = {}
    if segments:
        content["segment"] = [{"type": "TEXT", "text": text} for text in segments]
    if photo_url:
        content["attachment"] = [{"embed_item": {"plus_photo": {"url": photo_url, "media_type": "PHOTO"}}}]
    return {
        "sender_id": {"gaia_id": sender, "chat_id": sender},
        "timestamp": micros,
        "event_type": "REGULAR_CHAT_MESSAGE",
        "chat_message": {"message_content": content},
    }


@pytest.fixture
def hangouts_export(tmp_path: Path) -> Path:
    """Takeout tree with a legacy-format Hangouts.json."""
    root = tmp_path / "takeout-hangouts"
    write_json(
        root / "Takeout" / "Hangouts" / "Hangouts.json",
        {
            "conversation_state": [
                {
                    "conversation_id": {"id": "conv1"},
                    "conversation_state": {
                        "conversation": {
                            "id": {"id": "conv1"},
                            "self_conversation_state": {
                                "self_read_state": {"participant_id": {"gaia_id": "111"}}
                            },
                            "participant_data": [
                                {"id": {"gaia_id": "111"}, "fallback_name": "Jane Doe"},
                                {"id": {"gaia_id": "222"}, "fallback_name": "Alice Smith"},
                            ],
                        },
                        "event": [
                            _hangouts_event("111", "1700000000000000", segments=["hello ", "there"]),
                            _hangouts_event("222", "1700000060000000", photo_url="https://lh3.example/p.jpg"),
                            {"sender_id": {"gaia_id": "222"}, "timestamp": "1700000070000000"},
                            {"sender_id": {"gaia_id": "222"}, "chat_message": {}},
                        ],
                    },
                }
            ]
        },
    )
    return root


# =============================================================================
# Mail (mbox)
# =============================================================================

MBOX_TEXT = """From 1234@xxx Tue Nov 14 22:13:20 +0000 2023
X-GM-THRID: 1
X-Gmail-Labels: Inbox,Important
Delivered-To: me@example.com
From: "Smith, Alice" <alice@example.com>
To: Jane Doe <me@example.com>
Subject: Hello
Date: Tue, 14 Nov 2023 22:13:20 +0000
Message-ID: <1@example.com>
Content-Type: text/plain; charset="utf-8"

Hi Jane, how are you?

From 1235@xxx Tue Nov 14 23:00:00 +0000 2023
X-GM-THRID: 2
X-Gmail-Labels: Sent
From: Jane Doe <me@example.com>
To: Bob Jones <bob@example.com>
Subject: Report
Date: Tue, 14 Nov 2023 23:00:00 +0000
Message-ID: <2@example.com>
MIME-Version: 1.0
Content-Type: multipart/mixed; boundary="XYZ"

--XYZ
Content-Type: text/html; charset="utf-8"

<p>Here is the <b>report</b></p>
--XYZ
Content-Type: application/pdf; name="report.pdf"
Content-Disposition: attachment; filename="report.pdf"
Content-Transfer-Encoding: base64

JVBERi0xLjQ=
--XYZ--

From 1236@xxx Wed Nov 15 08:00:00 +0000 2023
X-GM-THRID: 3
From: Carol <carol@example.com>
To: me@example.com
Subject: No date here

This message has no Date header.

"""


@pytest.fixture
def mbox_export(tmp_path: Path) -> Path:
    """Takeout Mail directory with one mbox: received, sent (HTML + PDF), malformed."""
    root = tmp_path / "takeout-mail"
    mbox_file = root / "Mail" / "All mail Including Spam and Trash.mbox"
    mbox_file.parent.mkdir(parents=True, exist_ok=True)
    mbox_file.write_text(MBOX_TEXT, encoding="utf-8")
    return root


# =============================================================================
# Signal / mixed roots
# =============================================================================


@pytest.fixture
def signal_backup(tmp_path: Path) -> Path:
    path = tmp_path / "signal-2023-11-14-22-13-20.backup"
    path.write_bytes(b"\x00\x01encrypted")
    return path


@pytest.fixture
def mixed_root(tmp_path: Path) -> Path:
    """
    One directory holding an SMS backup, a Google Chat tree, a Hangouts
    file and a Signal backup side by side.
    """
    root = tmp_path / "exports"
    root.mkdir()
    (root / "sms-20231115.xml").write_text(SMS_BACKUP_XML, encoding="utf-8")
    (root / "signal-2023-11-14-22-13-20.backup").write_bytes(b"\x00\x01encrypted")
    write_json(
        root / "chat" / "Groups" / "DM b" / "messages.json",
        {"messages": [_chat_message("a@x.com", "Ann", "2023-11-14T22:13:20Z", "hi b")]},
    )
    write_json(
        root / "hangouts" / "Hangouts.json",
        {"conversations": []},
    )
    (root / "notes.txt").write_text("not an export", encoding="utf-8")
    return root
