"""Shared fakes and fixtures for the intake service tests."""

import json
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Union

import pytest

from intake_agent.case_store import CaseRepository
from intake_agent.errors import NotificationError
from intake_agent.models import ChatMessage
from intake_agent.notifier import Notification
from intake_agent.sessions import Runtime

FIXED_NOW = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
FIXED_INTERVIEW_DATE = "2024-01-01T09:30:00Z"

Reply = Union[str, Exception]


class FakeProvider:
    """Completion provider that replays scripted replies and records calls."""

    def __init__(self, replies: Iterable[Reply] = ()) -> None:
        self._replies: List[Reply] = list(replies)
        self.calls: List[dict] = []

    def queue(self, *replies: Reply) -> None:
        self._replies.extend(replies)

    async def complete(self, messages, *, response_format=None) -> ChatMessage:
        self.calls.append(
            {"messages": list(messages), "response_format": response_format}
        )
        if not self._replies:
            raise AssertionError("FakeProvider ran out of scripted replies")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatMessage(role="assistant", content=reply)


class RecordingNotifier:
    """Notifier that keeps every notification it was asked to send."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent: List[Notification] = []
        self._error = error

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        if self._error is not None:
            raise self._error


def report_json(**overrides) -> str:
    payload = {
        "projectName": "FAQ Bot",
        "projectSummary": "A chatbot that answers customer FAQs on the website.",
        "keyFeatures": ["Answer FAQs", "Hand over to a human"],
        "estimatedTimeline": "4-6 weeks",
        "interviewDate": FIXED_INTERVIEW_DATE,
    }
    payload.update(overrides)
    return json.dumps({k: v for k, v in payload.items() if v is not None})


def completed_conversation() -> List[dict]:
    return [
        {"role": "user", "content": "I need a bot for customer FAQs"},
        {"role": "assistant", "content": "Who are the customers asking these questions?"},
        {"role": "user", "content": "Retail shoppers on our web store."},
        {"role": "assistant", "content": "Which systems should the bot connect to?"},
        {"role": "user", "content": "Shopify and our Zendesk help desk."},
        {"role": "assistant", "content": "How will you measure success?"},
        {"role": "user", "content": "Fewer support tickets, maybe 30% less."},
    ]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def repository(tmp_path) -> CaseRepository:
    return CaseRepository(archive_path=tmp_path / "cases.jsonl")


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def runtime(provider, notifier, repository) -> Runtime:
    return Runtime(
        repository=repository,
        notifier=notifier,
        provider=provider,
        developer_password="open-sesame",
    )
