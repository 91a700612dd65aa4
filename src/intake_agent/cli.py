"""Command line entry-point: ``intake-agent [serve] ...`` or ``intake-agent cases ...``."""

from __future__ import annotations

import logging
import sys
from typing import Callable, Dict, List, Optional

from .api import build_arg_parser, serve
from .cases_cli import run_cases_cli
from .config import AppSettings


def _run_serve(argv: List[str]) -> None:
    args = build_arg_parser(prog="intake-agent serve").parse_args(argv)
    serve(args)


def _run_cases(argv: List[str]) -> None:
    try:
        settings = AppSettings.load()
    except RuntimeError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc
    run_cases_cli(settings, argv)


COMMANDS: Dict[str, Callable[[List[str]], None]] = {
    "serve": _run_serve,
    "cases": _run_cases,
}


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Dispatch to a subcommand; server flags alone imply ``serve``."""

    arg_list = list(argv) if argv is not None else sys.argv[1:]
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if arg_list and arg_list[0] in COMMANDS:
        COMMANDS[arg_list[0]](arg_list[1:])
        return
    _run_serve(arg_list)


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
