"""Opt-in OpenTelemetry tracing for model calls made through agent-framework."""

from __future__ import annotations

import logging
import os
from typing import Optional

from agent_framework.observability import setup_observability

logger = logging.getLogger(__name__)

SENSITIVE_CAPTURE_ENV = "INTAKE_TRACING_CAPTURE_SENSITIVE"

_tracing_enabled = False


def capture_sensitive_default() -> bool:
    """Prompts and completions are exported only when explicitly allowed."""

    return os.getenv(SENSITIVE_CAPTURE_ENV, "").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }


def initialize_tracing(
    *,
    endpoint: Optional[str],
    enable_sensitive_data: Optional[bool] = None,
) -> bool:
    """Export spans to ``endpoint``; returns whether tracing was switched on."""

    global _tracing_enabled
    if _tracing_enabled:
        return False
    if not endpoint:
        logger.warning(
            "--tracing requested but INTAKE_OTLP_ENDPOINT is empty; tracing stays off."
        )
        return False

    sensitive = (
        capture_sensitive_default()
        if enable_sensitive_data is None
        else enable_sensitive_data
    )
    try:
        setup_observability(otlp_endpoint=endpoint, enable_sensitive_data=sensitive)
    except Exception as exc:  # pragma: no cover - exporter wiring varies by install
        logger.warning("Could not start tracing exporter for %s: %s", endpoint, exc)
        return False

    _tracing_enabled = True
    logger.info(
        "Tracing model calls to %s (sensitive data %s)",
        endpoint,
        "included" if sensitive else "redacted",
    )
    return True
