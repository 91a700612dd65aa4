"""Configuration helpers for the intake analyst service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from importlib import import_module
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_MODELS = {
    "openai": "gpt-4o-mini",
    "azure-openai": "gpt-4o-mini",
    "gemini": "gemini-2.0-flash",
}

PROVIDER_KEY_FALLBACKS = {
    "openai": "OPENAI_API_KEY",
    "azure-openai": "AZURE_OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


class CaseTimezone(str, Enum):
    """Zone used for the date portion of case numbers."""

    UTC = "utc"
    LOCAL = "local"

    @classmethod
    def from_string(cls, value: str | None) -> "CaseTimezone":
        if not value:
            return cls.UTC
        normalized = value.strip().lower()
        for candidate in cls:
            if candidate.value == normalized:
                return candidate
        raise RuntimeError(f"Unsupported INTAKE_CASE_TIMEZONE: {value}")


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the runtime."""

    provider: str
    model: str
    endpoint: Optional[str]
    api_key: Optional[str]
    api_version: Optional[str]
    timeout_seconds: float

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(slots=True)
class NotifierSettings:
    """SMTP delivery settings for case notifications."""

    backend: str
    smtp_host: str
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    sender: Optional[str]
    recipient: Optional[str]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password and self.recipient)


@dataclass(slots=True)
class AppSettings:
    """Top-level application settings loaded from environment variables."""

    model: ModelSettings
    notifier: NotifierSettings
    output_dir: Path
    case_log: Path
    redis_url: Optional[str]
    case_timezone: CaseTimezone
    knowledge_base_path: Optional[Path]
    developer_password: Optional[str]
    min_analyst_turns: int
    port: int
    otlp_endpoint: Optional[str]

    @classmethod
    def load(cls) -> "AppSettings":
        """Load settings from the environment or .env file."""
        _ensure_dotenv()
        provider = _normalize_provider(
            os.getenv("INTAKE_MODEL_PROVIDER", "openai")
        )
        model = os.getenv("INTAKE_MODEL") or DEFAULT_PROVIDER_MODELS[provider]
        api_key = os.getenv("INTAKE_MODEL_API_KEY") or os.getenv(
            PROVIDER_KEY_FALLBACKS[provider]
        )
        timeout_seconds = _read_float("INTAKE_MODEL_TIMEOUT", "15")
        if timeout_seconds <= 0:
            raise RuntimeError("INTAKE_MODEL_TIMEOUT must be positive")

        output_dir = Path(os.getenv("INTAKE_OUTPUT_DIR", "outputs"))
        output_dir.mkdir(parents=True, exist_ok=True)
        case_log = Path(
            os.getenv("INTAKE_CASE_LOG", str(output_dir / "cases.jsonl"))
        )
        case_log.parent.mkdir(parents=True, exist_ok=True)
        redis_url = os.getenv("INTAKE_REDIS_URL")
        if redis_url is not None and not redis_url.strip():
            redis_url = None

        smtp_user = os.getenv("INTAKE_SMTP_USER") or None
        smtp_password = os.getenv("INTAKE_SMTP_PASSWORD") or None
        recipient = os.getenv("INTAKE_NOTIFY_TO") or smtp_user
        notifier_backend = os.getenv("INTAKE_NOTIFIER", "").strip().lower()
        if not notifier_backend:
            notifier_backend = (
                "smtp" if smtp_user and smtp_password else "console"
            )
        if notifier_backend not in {"smtp", "console"}:
            raise RuntimeError(
                f"Unsupported INTAKE_NOTIFIER backend: {notifier_backend}"
            )

        knowledge_base_raw = os.getenv("INTAKE_KNOWLEDGE_BASE", "").strip()
        min_turns = _read_int("INTAKE_MIN_ANALYST_TURNS", "0")
        if min_turns < 0:
            raise RuntimeError("INTAKE_MIN_ANALYST_TURNS must be >= 0")
        otlp_endpoint = os.getenv("INTAKE_OTLP_ENDPOINT", "").strip() or None

        return cls(
            model=ModelSettings(
                provider=provider,
                model=model,
                endpoint=os.getenv("INTAKE_MODEL_ENDPOINT") or None,
                api_key=api_key or None,
                api_version=os.getenv("INTAKE_MODEL_API_VERSION") or None,
                timeout_seconds=timeout_seconds,
            ),
            notifier=NotifierSettings(
                backend=notifier_backend,
                smtp_host=os.getenv("INTAKE_SMTP_HOST", "smtp.gmail.com"),
                smtp_port=_read_int("INTAKE_SMTP_PORT", "587"),
                smtp_user=smtp_user,
                smtp_password=smtp_password,
                sender=os.getenv("INTAKE_NOTIFY_FROM") or smtp_user,
                recipient=recipient,
            ),
            output_dir=output_dir,
            case_log=case_log,
            redis_url=redis_url,
            case_timezone=CaseTimezone.from_string(
                os.getenv("INTAKE_CASE_TIMEZONE")
            ),
            knowledge_base_path=(
                Path(knowledge_base_raw) if knowledge_base_raw else None
            ),
            developer_password=os.getenv("INTAKE_DEVELOPER_PASSWORD") or None,
            min_analyst_turns=min_turns,
            port=_read_int("PORT", "3000"),
            otlp_endpoint=otlp_endpoint,
        )

    def capability_warnings(self) -> List[str]:
        """Describe the capabilities that start up disabled or degraded."""

        warnings: List[str] = []
        if not self.model.configured:
            warnings.append(
                "No model API key configured; /chat and /intake will return 500."
            )
        if self.notifier.backend == "smtp" and not self.notifier.smtp_configured:
            warnings.append(
                "SMTP notifier selected but credentials or recipient are missing."
            )
        if self.notifier.backend == "console":
            warnings.append(
                "Email notifications disabled; case summaries are only logged."
            )
        if not self.redis_url:
            warnings.append(
                "INTAKE_REDIS_URL not set; cases are stored in the JSONL archive only."
            )
        if not self.developer_password:
            warnings.append(
                "INTAKE_DEVELOPER_PASSWORD not set; /verify-developer will return 500."
            )
        return warnings

    def log_capability_warnings(self) -> None:
        for warning in self.capability_warnings():
            logger.warning(warning)


def _normalize_provider(raw: str) -> str:
    provider = raw.strip().lower()
    if provider in {"azure-openai", "azure_openai", "azure"}:
        return "azure-openai"
    if provider in {"openai", "oai"}:
        return "openai"
    if provider in {"gemini", "google"}:
        return "gemini"
    raise RuntimeError(f"Unsupported INTAKE_MODEL_PROVIDER: {raw}")


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
