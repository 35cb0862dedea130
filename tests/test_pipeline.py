"""
Tests for the import pipeline.

Covers run classification (ok / partial / all failed / no sources),
detection-order concatenation and the thread-pool path.
"""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import pytest

from message_unifier.importers.base import Importer
from message_unifier.importers.google_chat import GoogleChatImporter
from message_unifier.importers.identity import ImportContext
from message_unifier.importers.mbox import MboxImporter
from message_unifier.importers.pipeline import (
    ImportReport,
    ImportStatus,
    SourceOutcome,
    import_detected,
    run_import,
)
from message_unifier.importers.registry import ImporterRegistry
from message_unifier.models import Contact, Message, MessageDirection


class _StubImporter(Importer):
    """Accepts files with a given suffix and yields one message per file."""

    def __init__(self, name: str, suffix: str, delay: float = 0.0, fail: bool = False):
        self.source_name = name
        self.suffix = suffix
        self.delay = delay
        self.fail = fail

    def can_import(self, path: Path) -> bool:
        return path.is_file() and path.suffix == self.suffix

    def import_messages(self, path: Path, context: Optional[ImportContext] = None) -> List[Message]:
        time.sleep(self.delay)
        if self.fail:
            raise ValueError(f"cannot parse {path.name}")
        return [
            Message(
                source_application=self.source_name,
                sender=Contact(path.stem),
                recipient=Contact("Me"),
                timestamp_utc=datetime(2023, 11, 14, tzinfo=timezone.utc),
                body=path.name,
                direction=MessageDirection.RECEIVED,
            )
        ]


def _touch(root: Path, *names: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        (root / name).write_text("x", encoding="utf-8")
    return root


class TestRunImport:
    """Tests for run_import against the real importers."""

    def test_partial_when_one_source_fails(self, mixed_root: Path):
        report = run_import(mixed_root)
        assert report.status == ImportStatus.PARTIAL
        assert [o.source_name for o in report.failed] == ["Signal Backup"]
        assert "encrypted" in report.failed[0].error
        assert len(report.messages) == 4

    def test_messages_in_detection_order(self, mixed_root: Path):
        report = run_import(mixed_root)
        sources = [m.source_application for m in report.messages]
        assert sources == ["Android SMS Backup & Restore"] * 3 + ["Google Chat"]

    def test_outcome_counts(self, mixed_root: Path):
        report = run_import(mixed_root)
        counts = {o.source_name: o.message_count for o in report.outcomes}
        assert counts == {
            "Android SMS Backup & Restore": 3,
            "Google Chat": 1,
            "Google Hangouts": 0,
            "Signal Backup": 0,
        }

    def test_only_selected_sources(self, mixed_root: Path):
        report = run_import(mixed_root, only=["Google Chat"])
        assert report.status == ImportStatus.OK
        assert [o.source_name for o in report.outcomes] == ["Google Chat"]

    def test_all_failed(self, mixed_root: Path):
        report = run_import(mixed_root, only=["Signal Backup"])
        assert report.status == ImportStatus.ALL_FAILED
        assert report.messages == []

    def test_no_sources(self, tmp_path: Path):
        report = run_import(tmp_path)
        assert report.status == ImportStatus.NO_SOURCES
        assert report.outcomes == []
        assert "No importable sources" in str(report)

    def test_missing_root_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            run_import(tmp_path / "missing")

    def test_context_is_shared(self, google_chat_export: Path):
        context = ImportContext()
        run_import(google_chat_export, context=context)
        assert context.resolution_for(str(google_chat_export)).email == "a@x.com"


class TestImportDetected:
    """Tests for sequential and threaded execution."""

    def test_thread_pool_keeps_detection_order(self, tmp_path: Path):
        root = _touch(tmp_path / "root", "a.slow", "b.fast", "c.fast")
        registry = ImporterRegistry(
            [_StubImporter("Slow", ".slow", delay=0.2), _StubImporter("Fast", ".fast")]
        )
        detected = registry.detect(root)
        report = import_detected(detected, max_workers=4)
        assert [m.body for m in report.messages] == ["a.slow", "b.fast", "c.fast"]
        assert report.status == ImportStatus.OK

    def test_sequential_and_threaded_agree(self, tmp_path: Path):
        root = _touch(tmp_path / "root", "a.one", "b.one", "c.two")
        registry = ImporterRegistry([_StubImporter("One", ".one"), _StubImporter("Two", ".two", fail=True)])
        detected = registry.detect(root)
        sequential = import_detected(detected, max_workers=1)
        threaded = import_detected(detected, max_workers=3)
        assert [m.body for m in sequential.messages] == [m.body for m in threaded.messages]
        assert sequential.status == threaded.status == ImportStatus.PARTIAL

    def test_failure_recorded_not_raised(self, tmp_path: Path):
        root = _touch(tmp_path / "root", "a.bad")
        registry = ImporterRegistry([_StubImporter("Bad", ".bad", fail=True)])
        report = import_detected(registry.detect(root))
        [outcome] = report.outcomes
        assert not outcome.succeeded
        assert outcome.error == "cannot parse a.bad"
        assert report.status == ImportStatus.ALL_FAILED


class TestOwnerIdentityIsolation:
    """Owner details found in one source never change another source's directions."""

    @pytest.fixture
    def chat_and_mail_root(self, google_chat_tied_export: Path) -> Path:
        (google_chat_tied_export / "mail.mbox").write_text(
            "From x@y Tue Nov 14 22:13:20 +0000 2023\n"
            "Delivered-To: a@x.com\n"
            "From: Ben <b@x.com>\n"
            "To: a@x.com\n"
            "Date: Tue, 14 Nov 2023 22:13:20 +0000\n"
            "\n"
            "mail\n"
            "\n",
            encoding="utf-8",
        )
        return google_chat_tied_export

    @staticmethod
    def _chat_directions(report: ImportReport):
        return {m.body: m.direction for m in report.messages if m.source_application == "Google Chat"}

    @pytest.mark.parametrize("workers", [1, 4])
    def test_same_directions_in_any_order(self, chat_and_mail_root: Path, workers: int):
        orders = ([GoogleChatImporter(), MboxImporter()], [MboxImporter(), GoogleChatImporter()])
        results = [
            self._chat_directions(
                run_import(
                    chat_and_mail_root,
                    registry=ImporterRegistry(order),
                    context=ImportContext(),
                    max_workers=workers,
                )
            )
            for order in orders
        ]
        expected = {"one": MessageDirection.UNKNOWN, "two": MessageDirection.UNKNOWN}
        assert results == [expected, expected]

    def test_mail_owner_found_from_its_own_headers(self, chat_and_mail_root: Path):
        report = run_import(chat_and_mail_root, registry=ImporterRegistry([MboxImporter()]))
        [mail] = report.messages
        assert mail.direction == MessageDirection.RECEIVED
        assert mail.recipient.emails == frozenset(["a@x.com"])


class TestReportFormatting:
    """Tests for the human-readable report."""

    def test_outcome_str(self):
        ok = SourceOutcome("Google Chat", Path("/x/chat"), message_count=5)
        failed = SourceOutcome("Signal Backup", Path("/x/s.backup"), error="encrypted")
        assert str(ok) == "Google Chat (/x/chat): 5 messages"
        assert str(failed) == "Signal Backup (/x/s.backup): FAILED: encrypted"

    def test_report_str(self):
        report = ImportReport(
            root=Path("/x"),
            status=ImportStatus.PARTIAL,
            outcomes=[SourceOutcome("Google Chat", Path("/x/chat"), message_count=5)],
        )
        text = str(report)
        assert text.startswith("Import PARTIAL under /x")
        assert "Google Chat (/x/chat): 5 messages" in text
        assert "Messages: 0" in text
