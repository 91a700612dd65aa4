"""Chat assistant and project intake interview service."""

from __future__ import annotations

from typing import Optional, Sequence

__version__ = "0.1.0"

__all__ = ["__version__", "run_cli"]


def run_cli(argv: Optional[Sequence[str]] = None) -> None:
    """Run the ``intake-agent`` command line without importing the server eagerly."""

    from .cli import run_cli as _cli

    _cli(list(argv) if argv is not None else None)
