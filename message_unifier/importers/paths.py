"""
Case-insensitive path helpers.

Exports are unpacked on every kind of filesystem and the same layout shows
up as "Messages/Inbox", "messages/inbox" or "MESSAGES/INBOX". All lookups
here compare one path segment at a time with case folding, so importers
behave the same on case-sensitive and case-insensitive filesystems.
"""

import fnmatch
from pathlib import Path
from typing import Iterable, Iterator, List, Optional


def find_child(parent: Path, name: str) -> Optional[Path]:
    """
    Find a direct child of `parent` whose name matches `name` ignoring case.

    An exact-case match wins over a case-folded one.

    Returns:
        The child path, or None if `parent` is not a directory or has no match.
    """
    if not parent.is_dir():
        return None

    exact = parent / name
    if exact.exists():
        return exact

    wanted = name.casefold()
    for child in sorted(parent.iterdir()):
        if child.name.casefold() == wanted:
            return child
    return None


def resolve_relative(root: Path, relative: str) -> Optional[Path]:
    """
    Resolve a "/"-separated relative path under `root`, segment by segment.

    Examples:
        resolve_relative(root, "Takeout/Google Chat/Groups") matches
        root/takeout/google chat/GROUPS as well.
    """
    current = root
    for segment in (part for part in relative.replace("\\", "/").split("/") if part):
        found = find_child(current, segment)
        if found is None:
            return None
        current = found
    return current


def first_existing(root: Path, candidates: Iterable[str], want_dir: bool = False) -> Optional[Path]:
    """Return the first candidate relative path that exists under `root`."""
    for candidate in candidates:
        resolved = root if candidate in ("", ".") else resolve_relative(root, candidate)
        if resolved is None:
            continue
        if want_dir and resolved.is_dir():
            return resolved
        if not want_dir and resolved.is_file():
            return resolved
    return None


def iter_files(directory: Path, pattern: str = "*", recursive: bool = False) -> Iterator[Path]:
    """
    Yield files under `directory` whose names match a glob pattern, ignoring case.

    Results are sorted so imports are deterministic.
    """
    if not directory.is_dir():
        return
    walker = directory.rglob("*") if recursive else directory.iterdir()
    wanted = pattern.casefold()
    for path in sorted(walker):
        if path.is_file() and fnmatch.fnmatchcase(path.name.casefold(), wanted):
            yield path


def has_suffix(path: Path, suffix: str) -> bool:
    return path.name.casefold().endswith(suffix.casefold())


def child_dirs(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(child for child in directory.iterdir() if child.is_dir())
