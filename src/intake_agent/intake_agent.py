"""Intake interview state machine: analyst turn decisions and report synthesis."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, cast

from pydantic import ValidationError

from .errors import InvalidInput, ProviderError, ReportGenerationError
from .maf_client import CompletionProvider
from .models import (
    CONVERSATION_ROLES,
    ChatMessage,
    Complete,
    Continue,
    Conversation,
    IntakeDecision,
    Report,
    ReportDraft,
    count_role,
)
from .prompts import (
    END_OF_INTAKE_MARKER,
    build_analyst_messages,
    build_manager_messages,
)

logger = logging.getLogger(__name__)

FALLBACK_QUESTION = (
    "Could you tell me a bit more about who will use this and how you will "
    "measure whether it succeeds?"
)


def validate_conversation(messages: Sequence[Any]) -> Conversation:
    """Check the caller's transcript before any provider is contacted.

    Accepts :class:`ChatMessage` instances or ``{"role", "content"}``
    mappings and returns a fresh list of messages in the same order.
    """

    if not messages:
        raise InvalidInput(
            'Request body must contain a non-empty "conversation" array.'
        )
    conversation: Conversation = []
    for index, item in enumerate(messages):
        if isinstance(item, ChatMessage):
            role, content = item.role, item.content
        elif isinstance(item, Mapping):
            role, content = item.get("role"), item.get("content")
        else:
            raise InvalidInput(
                f"Conversation entry {index} must be an object with role and content."
            )
        if role not in CONVERSATION_ROLES:
            raise InvalidInput(
                f"Conversation entry {index} has an unsupported role."
            )
        if not isinstance(content, str):
            raise InvalidInput(
                f"Conversation entry {index} must have string content."
            )
        conversation.append(ChatMessage(role=cast(str, role), content=content))
    if conversation[-1].role != "user":
        raise InvalidInput(
            "The last conversation entry must be a user message."
        )
    return conversation


def parse_decision(raw_text: str) -> IntakeDecision:
    """Map an analyst reply onto ``Continue`` or ``Complete``.

    The reply is complete when it contains the end-of-intake marker anywhere
    in the text; the marker is stripped from the returned draft.
    """

    text = (raw_text or "").strip()
    if not text:
        raise ProviderError("Model returned an empty analyst reply.")
    if END_OF_INTAKE_MARKER in text:
        draft = text.replace(END_OF_INTAKE_MARKER, "").strip()
        return Complete(draft=draft)
    return Continue(question=text)


def format_interview_date(now: datetime) -> str:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (
        now.astimezone(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    text = raw.strip()
    if not text:
        return None
    candidate = text
    if not candidate.lstrip().startswith("{"):
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            return None
        candidate = text[start:end + 1]
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return cast(Dict[str, Any], payload)


@dataclass(slots=True)
class ReportValidation:
    """Outcome of checking model output against the report schema."""

    report: Optional[Report] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.report is not None and not self.errors


def validate_report(
    data: Mapping[str, Any],
    *,
    interview_date: Optional[str] = None,
) -> ReportValidation:
    """Validate a parsed report object without filling in any defaults.

    When ``interview_date`` is given it is the server-stamped value: a model
    echo that differs from it is replaced, but a missing echo is an error.
    """

    try:
        report = Report.model_validate(dict(data))
    except ValidationError as exc:
        errors = [
            "{field}: {message}".format(
                field=".".join(str(part) for part in error["loc"]) or "report",
                message=error["msg"],
            )
            for error in exc.errors()
        ]
        return ReportValidation(errors=errors)
    if interview_date is not None and report.interview_date != interview_date:
        logger.warning(
            "Model altered interviewDate (%r); restoring server value %s",
            report.interview_date,
            interview_date,
        )
        report = report.model_copy(update={"interview_date": interview_date})
    return ReportValidation(report=report)


class IntakeAnalyst:
    """Decides, turn by turn, whether to ask another question or finish."""

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        min_analyst_turns: int = 0,
    ) -> None:
        self._provider = provider
        self._min_analyst_turns = min_analyst_turns

    async def decide(self, conversation: Sequence[Any]) -> IntakeDecision:
        transcript = validate_conversation(conversation)
        response = await self._provider.complete(
            build_analyst_messages(transcript)
        )
        decision = parse_decision(response.content)
        prior_turns = count_role(transcript, "assistant")
        if isinstance(decision, Complete) and prior_turns < self._min_analyst_turns:
            logger.info(
                "Ignoring early end-of-intake after %d analyst turns (minimum %d)",
                prior_turns,
                self._min_analyst_turns,
            )
            return Continue(question=FALLBACK_QUESTION)
        logger.info(
            "Intake decision: %s after %d analyst turns",
            "complete" if isinstance(decision, Complete) else "continue",
            prior_turns,
        )
        return decision


class ReportSynthesizer:
    """Turns a finished interview into a validated :class:`Report`."""

    def __init__(self, provider: CompletionProvider) -> None:
        self._provider = provider

    async def finalize(
        self,
        conversation: Sequence[ChatMessage],
        now: datetime,
    ) -> Report:
        interview_date = format_interview_date(now)
        response = await self._provider.complete(
            build_manager_messages(conversation, interview_date),
            response_format=ReportDraft,
        )
        data = extract_json_object(response.content)
        if data is None:
            raise ReportGenerationError(
                "Report output was not a single JSON object.",
                errors=["report: not a JSON object"],
            )
        validation = validate_report(data, interview_date=interview_date)
        if not validation.ok:
            raise ReportGenerationError(
                "Report output failed validation: "
                + "; ".join(validation.errors),
                errors=validation.errors,
            )
        assert validation.report is not None  # for type checkers
        return validation.report
