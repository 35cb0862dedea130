#!/usr/bin/env python3
"""
Main entry point for Message Unifier.

Provides a command-line interface for detecting, importing and
de-duplicating message exports.

Commands:
    detect ROOT       List the sources found under ROOT
    import ROOT       Import every source and print a summary
    candidates ROOT   List duplicate-contact groups awaiting a decision
    merge ROOT        Confirm or skip one candidate group
    apply ROOT        Import, apply confirmed merges and print a summary
"""
from typing import List, Optional
import argparse
import sys
import logging
from pathlib import Path

from message_unifier.config import Config, get_config, set_config
from message_unifier.filters import DateRangeFilter, remove_duplicate_messages
from message_unifier.importers import ImporterRegistry, ImportReport, ImportStatus, run_import
from message_unifier.logger_config import setup_logging
from message_unifier.merge import (
    MergeDecisionLog,
    apply_merge_decisions,
    find_merge_candidates,
)
from message_unifier.models import Contact, collect_contacts
from message_unifier.normalizers import looks_like_email
from message_unifier.utils import Colors, format_message_count, format_message_line

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Unify message exports (SMS, chat, social, email) into one timeline."
    )
    parser.add_argument(
        "--decisions",
        default=None,
        help="Merge decision log (default: ~/.message_unifier/merge_decisions.json).",
    )
    parser.add_argument(
        "--me",
        action="append",
        default=[],
        metavar="EMAIL_OR_NAME",
        help="Address or display name of the account owner; repeatable.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env var, else INFO).",
    )
    parser.add_argument(
        "--show-skipped",
        action="store_true",
        help="Log every malformed record that was skipped.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="List the sources found under ROOT.")
    detect.add_argument("root", help="Export directory to scan.")

    import_parser = subparsers.add_parser("import", help="Import every source under ROOT.")
    import_parser.add_argument("root", help="Export directory to import.")
    import_parser.add_argument(
        "--only",
        nargs="+",
        default=None,
        metavar="NAME",
        help="Import only these sources (names as printed by 'detect').",
    )
    import_parser.add_argument("--since", default=None, help="Keep messages on or after this date.")
    import_parser.add_argument("--until", default=None, help="Keep messages on or before this date.")
    import_parser.add_argument(
        "--dedupe",
        action="store_true",
        help="Drop exact duplicate messages (overlapping exports).",
    )
    import_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Sources imported in parallel (default: MESSAGE_UNIFIER_MAX_WORKERS or 1).",
    )
    import_parser.add_argument(
        "--latest-limit",
        type=int,
        default=10,
        help="How many latest messages to print (default: 10).",
    )

    candidates = subparsers.add_parser("candidates", help="List duplicate-contact groups.")
    candidates.add_argument("root", help="Export directory to import.")

    merge = subparsers.add_parser("merge", help="Confirm or skip one candidate group.")
    merge.add_argument("root", help="Export directory to import.")
    merge.add_argument("--group", type=int, required=True, help="Group number as printed by 'candidates'.")
    action = merge.add_mutually_exclusive_group(required=True)
    action.add_argument("--skip", action="store_true", help="Mark the group as not duplicates.")
    action.add_argument("--name", default=None, help="Canonical name for the merged contact.")
    merge.add_argument("--phone", action="append", default=[], help="Phone number of the merged contact.")
    merge.add_argument("--email", action="append", default=[], help="Email of the merged contact.")
    merge.add_argument("--reason", default="", help="Note stored with the decision.")

    apply = subparsers.add_parser("apply", help="Import and apply confirmed merges.")
    apply.add_argument("root", help="Export directory to import.")
    apply.add_argument(
        "--latest-limit",
        type=int,
        default=10,
        help="How many latest messages to print (default: 10).",
    )

    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> Config:
    """Global config plus any owner identity and worker count from the command line."""
    base = get_config(decisions_path=args.decisions)
    emails = [value for value in args.me if looks_like_email(value)]
    names = [value for value in args.me if not looks_like_email(value)]
    workers = getattr(args, "workers", None)
    config = Config(
        decisions_path=base.decisions_path_str,
        user_emails=base.user_emails + emails,
        user_names=base.user_names + names,
        max_workers=workers if workers is not None else base.max_workers,
        name_similarity_threshold=base.name_similarity_threshold,
    )
    set_config(config)
    return config


def _import(config: Config, root: str, only: Optional[List[str]] = None) -> ImportReport:
    return run_import(
        Path(root),
        context=config.new_import_context(),
        only=only,
        max_workers=config.max_workers,
    )


def _print_report(report: ImportReport) -> None:
    print_section("Sources")
    if report.status == ImportStatus.NO_SOURCES:
        print(f"{Colors.WARNING}No importable sources found under {report.root}{Colors.ENDC}")
        return
    for outcome in report.outcomes:
        if outcome.succeeded:
            print(
                f"{Colors.OKGREEN}  OK{Colors.ENDC}  {outcome.source_name:32s} "
                f"{format_message_count(outcome.message_count):>8s}  {outcome.source_path}"
            )
        else:
            print(f"{Colors.FAIL}FAIL{Colors.ENDC}  {outcome.source_name:32s} {outcome.error}")
    print(f"\nStatus: {report.status.value.upper()} in {report.duration_seconds:.2f}s")


def _print_messages(messages, limit: int) -> None:
    print_section(f"Latest Messages ({min(limit, len(messages))} of {len(messages):,})")
    latest = sorted(messages, key=lambda m: m.timestamp_utc, reverse=True)[:limit]
    for i, message in enumerate(latest, 1):
        print(f"{i:2d}. {format_message_line(message)}")


def _exit_code(report: ImportReport) -> int:
    if report.status in (ImportStatus.NO_SOURCES, ImportStatus.ALL_FAILED):
        return EXIT_FAILURE
    return EXIT_OK


def cmd_detect(args: argparse.Namespace, config: Config) -> int:
    detected = ImporterRegistry().detect(Path(args.root))
    print_section(f"Sources under {detected.root}")
    print(detected.summary())
    return EXIT_OK if not detected.is_empty else EXIT_FAILURE


def cmd_import(args: argparse.Namespace, config: Config) -> int:
    date_filter = DateRangeFilter(args.since, args.until)
    report = _import(config, args.root, args.only)
    _print_report(report)

    messages = date_filter.apply(report.messages)
    if args.dedupe:
        messages = remove_duplicate_messages(messages)
    if messages:
        _print_messages(messages, args.latest_limit)
    return _exit_code(report)


def cmd_candidates(args: argparse.Namespace, config: Config) -> int:
    log = MergeDecisionLog(config.decisions_path)
    report = _import(config, args.root)
    candidates = find_merge_candidates(
        collect_contacts(report.messages),
        decisions=log,
        threshold=config.name_similarity_threshold,
    )

    print_section(f"Merge Candidates ({len(candidates)})")
    if not candidates:
        print("No duplicate contacts awaiting a decision.")
    for i, candidate in enumerate(candidates, 1):
        print(f"{Colors.BOLD}{i:2d}. {candidate.reason}{Colors.ENDC}")
        for contact in candidate.contacts:
            print(f"      - {contact}")
    return _exit_code(report)


def cmd_merge(args: argparse.Namespace, config: Config) -> int:
    log = MergeDecisionLog(config.decisions_path)
    report = _import(config, args.root)
    candidates = find_merge_candidates(
        collect_contacts(report.messages),
        decisions=log,
        threshold=config.name_similarity_threshold,
    )
    if not 1 <= args.group <= len(candidates):
        print(f"{Colors.FAIL}Error: no candidate group {args.group} ({len(candidates)} available){Colors.ENDC}")
        return EXIT_FAILURE

    candidate = candidates[args.group - 1]
    if args.skip:
        log.skip(candidate, reason=args.reason)
        print(f"{Colors.OKGREEN}Skipped group {args.group}: {candidate}{Colors.ENDC}")
    else:
        target = Contact(args.name, frozenset(args.phone), frozenset(args.email))
        log.confirm(candidate, target, reason=args.reason)
        print(f"{Colors.OKGREEN}Merged group {args.group} into {target}{Colors.ENDC}")
    print(f"Decision saved to {log.path}")
    return EXIT_OK


def cmd_apply(args: argparse.Namespace, config: Config) -> int:
    log = MergeDecisionLog(config.decisions_path)
    report = _import(config, args.root)
    _print_report(report)

    messages = apply_merge_decisions(report.messages, log)
    print_section("Merge Summary")
    print(f"Confirmed decisions: {len(log.confirmed)}")
    print(f"Contacts before: {len(collect_contacts(report.messages)):,}")
    print(f"Contacts after:  {len(collect_contacts(messages)):,}")
    if messages:
        _print_messages(messages, args.latest_limit)
    return _exit_code(report)


COMMANDS = {
    "detect": cmd_detect,
    "import": cmd_import,
    "candidates": cmd_candidates,
    "merge": cmd_merge,
    "apply": cmd_apply,
}


def main(argv: Optional[List[str]] = None):
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    level = getattr(logging, args.log_level) if args.log_level else None
    workers = getattr(args, "workers", None) or 1
    setup_logging(level=level, threaded=workers > 1, show_skipped_records=args.show_skipped)

    try:
        config = _build_config(args)
        exit_code = COMMANDS[args.command](args, config)
    except (FileNotFoundError, ValueError) as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        logger.debug("Command failed", exc_info=True)
        sys.exit(EXIT_FAILURE)

    if exit_code != EXIT_OK:
        sys.exit(exit_code)


if __name__ == '__main__':
    main()
