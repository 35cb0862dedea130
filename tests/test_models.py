"""
Tests for the unified data model.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from message_unifier.models import (
    SELF_NAME,
    Contact,
    MediaAttachment,
    Message,
    MessageDirection,
    collect_contacts,
)

# 2023-11-14T22:13:20Z
BASE_DATETIME = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def _message(**overrides) -> Message:
    fields = dict(
        source_application="Test",
        sender=Contact.from_name(SELF_NAME),
        recipient=Contact.from_phone("Alice", "+15551234567"),
        timestamp_utc=BASE_DATETIME,
        body="hi",
        direction=MessageDirection.SENT,
    )
    fields.update(overrides)
    return Message(**fields)


class TestContact:
    """Tests for Contact construction and equality."""

    def test_phone_and_email_are_normalized(self):
        contact = Contact("Alice", frozenset(["(555) 123-4567"]), frozenset([" Alice@Example.COM "]))
        assert contact.phone_numbers == frozenset(["+15551234567"])
        assert contact.emails == frozenset(["alice@example.com"])

    def test_equality_uses_signature(self):
        a = Contact("Alice  Smith", frozenset(["555-123-4567"]))
        b = Contact("alice smith", frozenset(["+1 555 123 4567"]))
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_phone_is_different_contact(self):
        assert Contact.from_phone("Alice", "+15551234567") != Contact.from_phone("Alice", "+15557654321")

    def test_signature_layout(self):
        contact = Contact("John", frozenset(["+15551234567"]), frozenset(["j@x.com"]))
        assert contact.signature == "john|+15551234567|j@x.com"

    def test_from_phone_uses_number_when_name_missing(self):
        contact = Contact.from_phone(None, "+15551234567")
        assert contact.name == "+15551234567"

    def test_from_email_uses_address_when_name_missing(self):
        contact = Contact.from_email("", "bob@example.com")
        assert contact.name == "bob@example.com"
        assert contact.emails == frozenset(["bob@example.com"])

    def test_from_name_defaults_to_unknown(self):
        assert Contact.from_name(None).name == "Unknown"

    def test_is_immutable(self):
        contact = Contact("Alice")
        with pytest.raises(FrozenInstanceError):
            contact.name = "Bob"

    def test_str_lists_details(self):
        assert str(Contact.from_email("Bob", "bob@x.com")) == "Bob <bob@x.com>"
        assert str(Contact("Bob")) == "Bob"


class TestMediaAttachment:
    """Tests for MediaAttachment."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("messages/inbox/alice/photos/1.jpg", "1.jpg"),
            ("C:\\exports\\photo.png", "photo.png"),
            ("photo.jpg", "photo.jpg"),
            ("", ""),
        ],
    )
    def test_file_name(self, path, expected):
        assert MediaAttachment(path, "image/jpeg").file_name == expected


class TestMessage:
    """Tests for Message validation and copying."""

    def test_naive_timestamp_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            _message(timestamp_utc=datetime(2023, 11, 14, 22, 13, 20))

    def test_non_datetime_rejected(self):
        with pytest.raises(TypeError):
            _message(timestamp_utc=1700000000)

    def test_missing_contact_rejected(self):
        with pytest.raises(ValueError):
            _message(sender=None)

    def test_timestamp_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        message = _message(timestamp_utc=datetime(2023, 11, 15, 0, 13, 20, tzinfo=plus_two))
        assert message.timestamp_utc == BASE_DATETIME
        assert message.timestamp_utc.utcoffset() == timedelta(0)

    def test_body_and_attachments_defaults(self):
        message = _message(body=None, attachments=None)
        assert message.body == ""
        assert message.attachments == ()

    def test_attachments_become_tuple(self):
        message = _message(attachments=[MediaAttachment("a.jpg", "image/jpeg")])
        assert isinstance(message.attachments, tuple)

    def test_with_contacts_preserves_other_fields(self):
        original = _message(attachments=(MediaAttachment("a.jpg", "image/jpeg"),))
        bob = Contact("Bob")
        updated = original.with_contacts(original.sender, bob)
        assert updated.recipient == bob
        assert updated.body == original.body
        assert updated.timestamp_utc == original.timestamp_utc
        assert updated.attachments == original.attachments
        assert updated.direction == original.direction

    def test_with_contacts_unchanged_returns_same_object(self):
        original = _message()
        assert original.with_contacts(original.sender, original.recipient) is original

    def test_direction_values(self):
        assert MessageDirection.SENT.value == "sent"
        assert MessageDirection("received") == MessageDirection.RECEIVED


class TestCollectContacts:
    """Tests for collect_contacts."""

    def test_distinct_in_first_seen_order(self):
        alice = Contact("Alice")
        bob = Contact("Bob")
        me = Contact(SELF_NAME)
        messages = [
            _message(sender=me, recipient=alice),
            _message(sender=alice, recipient=me),
            _message(sender=me, recipient=bob),
        ]
        assert collect_contacts(messages) == [me, alice, bob]

    def test_empty(self):
        assert collect_contacts([]) == []
