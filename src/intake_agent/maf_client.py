"""Thin wrappers around Microsoft Agent Framework chat completion clients.

This module centralizes the integration with the Microsoft Agent Framework
(MAF) so the rest of the application can stay framework-agnostic. It loads
the appropriate client implementation at runtime based on the configured
provider and exposes a single ``complete`` coroutine that the intake and chat
flows depend on through the :class:`CompletionProvider` protocol.
"""

from __future__ import annotations

import asyncio
import logging
from importlib import import_module
from typing import Iterable, List, Optional, Protocol, Type

from agent_framework import ChatMessage as MAFChatMessage, Role
from pydantic import BaseModel

from .config import ModelSettings
from .errors import ProviderError
from .models import ChatMessage

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/openai/"
)


class CompletionProvider(Protocol):
    """Anything that can turn a role-tagged message list into text."""

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        response_format: Optional[Type[BaseModel]] = None,
    ) -> ChatMessage:
        ...


def _coerce_role(role: str) -> Role:
    try:
        return Role(role)
    except ValueError as exc:
        raise ValueError(
            "Unsupported role for MAF chat message: {role}".format(role=role)
        ) from exc


class MAFIntegrationError(RuntimeError):
    """Raised when the MAF client cannot be initialized."""


class MAFChatClient:
    """Wrapper that dispatches chat completion calls through MAF clients."""

    def __init__(self, settings: ModelSettings) -> None:
        self._settings = settings
        self._timeout = settings.timeout_seconds
        self._client = self._create_client(settings)

    @staticmethod
    def _create_client(settings: ModelSettings):
        provider = settings.provider.lower()
        try:
            if provider == "azure-openai":
                module = import_module("agent_framework.azure")
                client_cls = getattr(module, "AzureOpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    deployment_name=settings.model,
                    endpoint=settings.endpoint,
                    api_version=settings.api_version,
                )
            if provider in {"openai", "gemini"}:
                module = import_module("agent_framework.openai")
                client_cls = getattr(module, "OpenAIChatClient")
                base_url = settings.endpoint
                if provider == "gemini" and not base_url:
                    base_url = GEMINI_OPENAI_BASE_URL
                return client_cls(
                    api_key=settings.api_key,
                    model_id=settings.model,
                    base_url=base_url,
                )
        except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
            missing = exc.name or "a required dependency"
            raise MAFIntegrationError(
                "Microsoft Agent Framework dependency '{missing}' is missing. "
                "Reinstall the project dependencies (e.g. `pip install -e .`)."
                .format(missing=missing)
            ) from exc
        raise MAFIntegrationError(
            f"Unsupported MAF provider '{settings.provider}'."
        )

    @staticmethod
    def _merge_consecutive_roles(
        messages: Iterable[ChatMessage],
    ) -> List[ChatMessage]:
        """Combine adjacent messages that share the same role.

        Chat templates expect user/assistant roles to alternate. Callers may
        post several user turns back-to-back, so their content is merged to
        preserve intent while keeping the required alternation.
        """

        merged: List[ChatMessage] = []
        for message in messages:
            if merged and merged[-1].role == message.role:
                previous = merged[-1]
                previous.content = (
                    f"{previous.content}\n\n{message.content}".strip()
                )
                continue
            merged.append(
                ChatMessage(role=message.role, content=message.content)
            )
        return merged

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        response_format: Optional[Type[BaseModel]] = None,
    ) -> ChatMessage:
        """Execute one bounded chat completion call through the MAF client."""

        merged_messages = self._merge_consecutive_roles(messages)
        payload: List[MAFChatMessage] = [
            MAFChatMessage(role=_coerce_role(msg.role), text=msg.content)
            for msg in merged_messages
        ]
        options = {}
        if response_format is not None:
            options["response_format"] = response_format
        try:
            response = await asyncio.wait_for(
                self._client.get_response(messages=payload, **options),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Model call to %s timed out after %ss",
                self._settings.provider,
                self._timeout,
            )
            raise ProviderError(
                f"Model call timed out after {self._timeout}s"
            ) from exc
        except Exception as exc:
            logger.warning(
                "Model call to %s failed: %s", self._settings.provider, exc
            )
            raise ProviderError(f"Model call failed: {exc}") from exc
        return ChatMessage(role="assistant", content=response.text or "")


def build_completion_provider(
    settings: ModelSettings,
) -> Optional[CompletionProvider]:
    """Return a configured provider, or ``None`` when no API key is set."""

    if not settings.configured:
        return None
    return MAFChatClient(settings)
