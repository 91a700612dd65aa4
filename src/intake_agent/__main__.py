"""Allow ``python -m intake_agent [serve|cases ...]``."""

from .cli import run_cli

if __name__ == "__main__":  # pragma: no cover - runtime hook
    run_cli()
