"""
Utility functions and classes for Message Unifier's terminal output.
"""

from message_unifier.models import Message


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"
    UNDERLINE = "\033[4m"


def format_message_count(count: int) -> str:
    """
    Format message count with appropriate units.

    Args:
        count: Number of messages.

    Returns:
        Formatted string (e.g., "999", "1.2K" or "3.4M").
    """
    if count < 1000:
        return str(count)
    elif count < 1_000_000:
        return f"{count / 1000:.1f}K"
    else:
        return f"{count / 1_000_000:.1f}M"


def truncate(text: str, width: int = 60) -> str:
    """Single-line preview of `text`, at most `width` characters."""
    flat = " ".join((text or "").split())
    if len(flat) <= width:
        return flat
    return flat[: max(width - 3, 0)] + "..."


def format_message_line(message: Message, width: int = 60) -> str:
    """One-line summary: time, direction, participants, body preview."""
    stamp = message.timestamp_utc.strftime("%Y-%m-%d %H:%M:%S")
    tag = {"sent": "SENT", "received": "RECV"}.get(message.direction.value, "????")
    preview = truncate(message.body, width)
    if message.attachments:
        preview = f"{preview} [+{len(message.attachments)} attachment(s)]".strip()
    return f"[{stamp}] {tag} {message.sender.name} -> {message.recipient.name}: {preview}"
