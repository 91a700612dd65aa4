"""Case numbers, case commits, and the notification summary."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .case_store import CaseRepository
from .config import CaseTimezone
from .errors import NotificationError, PersistenceError
from .models import CaseRecord, ChatMessage, Report
from .notifier import Notification, Notifier
from .prompts import render_transcript

logger = logging.getLogger(__name__)

CASE_PREFIX = "SA"
CASE_SUFFIX_LENGTH = 6
CASE_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
CASE_NUMBER_MAX_ATTEMPTS = 5


def generate_case_number(
    now: Optional[datetime] = None,
    *,
    zone: CaseTimezone = CaseTimezone.UTC,
) -> str:
    """Return ``SA-YYYYMMDD-XXXXXX`` for the given moment."""

    moment = now or datetime.now(timezone.utc)
    if zone is CaseTimezone.UTC:
        moment = moment.astimezone(timezone.utc)
    else:
        moment = moment.astimezone()
    suffix = "".join(
        secrets.choice(CASE_SUFFIX_ALPHABET) for _ in range(CASE_SUFFIX_LENGTH)
    )
    return f"{CASE_PREFIX}-{moment:%Y%m%d}-{suffix}"


def render_case_summary(record: CaseRecord) -> Notification:
    report = record.report
    features = "\n".join(f"  - {feature}" for feature in report.key_features)
    body = "\n".join(
        [
            f"Case Number: {record.case_number}",
            f"Interview Date: {report.interview_date}",
            "",
            f"Project Name: {report.project_name}",
            f"Project Summary: {report.project_summary}",
            "Key Features:",
            features,
            f"Estimated Timeline: {report.estimated_timeline}",
            "",
            "Full Transcript:",
            render_transcript(record.full_transcript),
        ]
    )
    return Notification(
        subject=f"New Project Intake: {report.project_name} ({record.case_number})",
        body=body,
    )


class CaseCommitter:
    """Writes a validated report as a new case, then notifies a human.

    Commits are not idempotent unless the caller supplies an idempotency
    key: every call mints a fresh case number.
    """

    def __init__(
        self,
        repository: CaseRepository,
        notifier: Notifier,
        *,
        zone: CaseTimezone = CaseTimezone.UTC,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._zone = zone
        self._clock = clock

    async def commit(
        self,
        report: Report,
        conversation: Sequence[ChatMessage],
        *,
        idempotency_key: Optional[str] = None,
    ) -> CaseRecord:
        if idempotency_key:
            existing = await asyncio.to_thread(
                self._repository.find_by_idempotency_key, idempotency_key
            )
            if existing is not None:
                logger.info(
                    "Idempotency key matched existing case %s",
                    existing.case_number,
                )
                return existing

        record = await asyncio.to_thread(
            self._store, report, conversation, idempotency_key
        )
        try:
            await self._notifier.send(render_case_summary(record))
        except NotificationError as exc:
            exc.case_number = record.case_number
            raise
        except Exception as exc:
            logger.exception(
                "Notification failed for stored case %s", record.case_number
            )
            raise NotificationError(
                f"Notification failed: {exc}",
                case_number=record.case_number,
            ) from exc
        return record

    def _store(
        self,
        report: Report,
        conversation: Sequence[ChatMessage],
        idempotency_key: Optional[str],
    ) -> CaseRecord:
        transcript = [
            ChatMessage(role=message.role, content=message.content)
            for message in conversation
        ]
        for attempt in range(1, CASE_NUMBER_MAX_ATTEMPTS + 1):
            case_number = generate_case_number(self._clock(), zone=self._zone)
            record = CaseRecord(
                case_number=case_number,
                report=report,
                full_transcript=transcript,
                idempotency_key=idempotency_key,
            )
            if self._repository.create(record):
                return record
            logger.warning(
                "Case number %s already taken (attempt %d)", case_number, attempt
            )
        raise PersistenceError(
            f"Could not allocate a free case number after {CASE_NUMBER_MAX_ATTEMPTS} attempts."
        )
