"""Shared runtime wiring and stateless intake turn orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from .case_store import CaseRepository
from .cases import CaseCommitter
from .chat_agent import ChatAssistant
from .config import AppSettings, CaseTimezone
from .errors import ConfigError
from .intake_agent import IntakeAnalyst, ReportSynthesizer, validate_conversation
from .knowledge_base import KnowledgeEntry, load_knowledge_base
from .maf_client import CompletionProvider, build_completion_provider
from .models import CaseRecord, Complete
from .notifier import Notifier, build_notifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IntakeTurnResult:
    """What one ``/intake`` call produced."""

    status: str
    reply: Optional[str] = None
    case: Optional[CaseRecord] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.case is None:
            return {"status": self.status, "reply": self.reply}
        return {
            "status": self.status,
            "caseNumber": self.case.case_number,
            "report": self.case.report.to_payload(),
        }


class IntakeService:
    """Runs one stateless intake turn: decide, then finalize and commit."""

    def __init__(
        self,
        provider: CompletionProvider,
        committer: CaseCommitter,
        *,
        min_analyst_turns: int = 0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._analyst = IntakeAnalyst(
            provider,
            min_analyst_turns=min_analyst_turns,
        )
        self._synthesizer = ReportSynthesizer(provider)
        self._committer = committer
        self._clock = clock

    async def handle_turn(
        self,
        conversation: Sequence[Any],
        *,
        idempotency_key: Optional[str] = None,
    ) -> IntakeTurnResult:
        transcript = validate_conversation(conversation)
        decision = await self._analyst.decide(transcript)
        if not isinstance(decision, Complete):
            return IntakeTurnResult(status="in-progress", reply=decision.question)

        report = await self._synthesizer.finalize(transcript, self._clock())
        record = await self._committer.commit(
            report,
            transcript,
            idempotency_key=idempotency_key,
        )
        logger.info("Intake complete: case %s", record.case_number)
        return IntakeTurnResult(status="complete", case=record)


def _no_knowledge() -> List[KnowledgeEntry]:
    return []


@dataclass(slots=True)
class Runtime:
    """Collaborators built once at startup and shared by every request."""

    repository: CaseRepository
    notifier: Notifier
    provider: Optional[CompletionProvider] = None
    knowledge_base: List[KnowledgeEntry] = field(default_factory=_no_knowledge)
    min_analyst_turns: int = 0
    case_timezone: CaseTimezone = CaseTimezone.UTC
    developer_password: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "Runtime":
        settings.log_capability_warnings()
        return cls(
            repository=CaseRepository(
                archive_path=settings.case_log,
                redis_url=settings.redis_url,
            ),
            notifier=build_notifier(settings.notifier),
            provider=build_completion_provider(settings.model),
            knowledge_base=load_knowledge_base(settings.knowledge_base_path),
            min_analyst_turns=settings.min_analyst_turns,
            case_timezone=settings.case_timezone,
            developer_password=settings.developer_password,
        )

    def require_provider(self) -> CompletionProvider:
        if self.provider is None:
            raise ConfigError(
                "Model API key is not configured on the server.",
                public_message="AI provider API key is not configured on the server.",
            )
        return self.provider

    def chat_assistant(self) -> ChatAssistant:
        return ChatAssistant(self.require_provider(), self.knowledge_base)

    def intake_service(self) -> IntakeService:
        committer = CaseCommitter(
            self.repository,
            self.notifier,
            zone=self.case_timezone,
        )
        return IntakeService(
            self.require_provider(),
            committer,
            min_analyst_turns=self.min_analyst_turns,
        )
