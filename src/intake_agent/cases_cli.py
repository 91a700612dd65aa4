"""Command-line utilities for inspecting stored intake cases."""

from __future__ import annotations

import argparse
from typing import Callable, List, Optional

from .case_store import CaseRepository
from .config import AppSettings
from .prompts import render_transcript

CommandHandler = Callable[[CaseRepository, argparse.Namespace], None]


def run_cases_cli(
    settings: AppSettings,
    argv: Optional[List[str]] = None,
) -> None:
    """Entry point for case-related CLI commands."""

    repository = CaseRepository(
        archive_path=settings.case_log,
        redis_url=settings.redis_url,
    )
    parser = argparse.ArgumentParser(
        prog="intake-agent cases",
        description="List and display finalized intake cases.",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    list_parser = subparsers.add_parser(
        "list",
        help="Show recent cases",
    )
    list_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=10,
        help="Maximum number of cases to display (default: 10)",
    )
    list_parser.set_defaults(func=_handle_list)

    show_parser = subparsers.add_parser(
        "show",
        help="Display the report and transcript for a case",
    )
    show_parser.add_argument("case_number", help="Case number, e.g. SA-20240101-ABC123")
    show_parser.set_defaults(func=_handle_show)

    args = parser.parse_args(argv)
    handler: CommandHandler = args.func
    handler(repository, args)


def _handle_list(repository: CaseRepository, args: argparse.Namespace) -> None:
    records = repository.list(limit=args.limit)
    if not records:
        print("No cases found.")
        return
    print(f"Showing {len(records)} cases:")
    for record in records:
        written = record.timestamp.isoformat() if record.timestamp else "unknown"
        print(
            f" - {record.case_number} | {written} | "
            f"{record.report.project_name}"
        )


def _handle_show(repository: CaseRepository, args: argparse.Namespace) -> None:
    record = repository.get(args.case_number)
    if not record:
        print(f"Case '{args.case_number}' not found.")
        return
    report = record.report
    print(f"Case Number: {record.case_number}")
    print(f"Interview Date: {report.interview_date}")
    print(f"Project Name: {report.project_name}")
    print(f"Project Summary: {report.project_summary}")
    print("Key Features:")
    for feature in report.key_features:
        print(f" - {feature}")
    print(f"Estimated Timeline: {report.estimated_timeline}")
    print("\n" + "-" * 40)
    print(render_transcript(record.full_transcript))
