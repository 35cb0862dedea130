"""
Tests for utils.py functions.

Tests utility functions for formatting and terminal output.
"""

from datetime import datetime, timezone

import pytest

from message_unifier.models import Contact, MediaAttachment, Message, MessageDirection
from message_unifier.utils import Colors, format_message_count, format_message_line, truncate


def _message(body: str = "hello", direction=MessageDirection.SENT, attachments=()) -> Message:
    return Message(
        source_application="Test",
        sender=Contact("Jane"),
        recipient=Contact("Alice"),
        timestamp_utc=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc),
        body=body,
        direction=direction,
        attachments=attachments,
    )


class TestColors:
    """Tests for Colors class."""

    def test_colors_are_ansi_escape_codes(self):
        """Colors should be ANSI escape sequences."""
        for code in (Colors.HEADER, Colors.OKBLUE, Colors.OKGREEN, Colors.WARNING, Colors.FAIL, Colors.BOLD):
            assert code.startswith("\033[")

    def test_endc_resets_formatting(self):
        assert Colors.ENDC == "\033[0m"


class TestFormatMessageCount:
    """Tests for format_message_count function."""

    @pytest.mark.parametrize(
        "count,expected",
        [
            (0, "0"),
            (999, "999"),
            (1000, "1.0K"),
            (1234, "1.2K"),
            (999_999, "1000.0K"),
            (1_000_000, "1.0M"),
            (3_460_000, "3.5M"),
        ],
    )
    def test_format(self, count, expected):
        assert format_message_count(count) == expected


class TestTruncate:
    """Tests for truncate function."""

    def test_short_text_unchanged(self):
        assert truncate("hello") == "hello"

    def test_whitespace_flattened(self):
        assert truncate("line one\n\n  line two") == "line one line two"

    def test_long_text_cut_with_ellipsis(self):
        result = truncate("x" * 100, width=10)
        assert result == "xxxxxxx..."
        assert len(result) == 10

    def test_none_is_empty(self):
        assert truncate(None) == ""


class TestFormatMessageLine:
    """Tests for format_message_line function."""

    def test_sent(self):
        assert format_message_line(_message()) == "[2023-11-14 22:13:20] SENT Jane -> Alice: hello"

    def test_received_and_unknown_tags(self):
        assert " RECV " in format_message_line(_message(direction=MessageDirection.RECEIVED))
        assert " ???? " in format_message_line(_message(direction=MessageDirection.UNKNOWN))

    def test_attachments_counted(self):
        photo = MediaAttachment("photo.jpg", "image/jpeg")
        line = format_message_line(_message(body="", attachments=(photo,)))
        assert line.endswith("Alice: [+1 attachment(s)]")

    def test_long_body_truncated(self):
        line = format_message_line(_message(body="word " * 50), width=20)
        assert line.endswith("...")
