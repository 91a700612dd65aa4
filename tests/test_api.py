"""End-to-end tests for the HTTP surface with fake collaborators."""

import re

import pytest
from fastapi.testclient import TestClient

from intake_agent.api import LIVENESS_TEXT, create_app
from intake_agent.chat_agent import EMPTY_REPLY_FALLBACK
from intake_agent.errors import NotificationError, ProviderError
from intake_agent.knowledge_base import KnowledgeEntry
from intake_agent.prompts import END_OF_INTAKE_MARKER
from intake_agent.sessions import Runtime

from .conftest import RecordingNotifier, completed_conversation, report_json

CASE_NUMBER_PATTERN = re.compile(r"^SA-\d{8}-[A-Z0-9]{6}$")


@pytest.fixture
def client(runtime) -> TestClient:
    return TestClient(create_app(runtime=runtime))


class TestLiveness:
    def test_root_returns_text(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == LIVENESS_TEXT

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestIntakeEndpoint:
    def test_first_turn_is_in_progress_without_side_effects(self, client, provider, notifier, repository):
        provider.queue("Who are the customers asking these questions?")

        response = client.post(
            "/intake",
            json={"conversation": [{"role": "user", "content": "I need a bot for customer FAQs"}]},
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "in-progress",
            "reply": "Who are the customers asking these questions?",
        }
        assert repository.list() == []
        assert notifier.sent == []

    def test_completion_creates_exactly_one_case(self, client, provider, notifier, repository):
        provider.queue(f"Thanks, I have everything I need. {END_OF_INTAKE_MARKER}", report_json())

        response = client.post("/intake", json={"conversation": completed_conversation()})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "complete"
        assert CASE_NUMBER_PATTERN.match(body["caseNumber"])
        assert set(body["report"]) == {
            "projectName",
            "projectSummary",
            "keyFeatures",
            "estimatedTimeline",
            "interviewDate",
        }
        records = repository.list()
        assert [record.case_number for record in records] == [body["caseNumber"]]
        assert records[0].report.to_payload() == body["report"]
        assert len(notifier.sent) == 1

    def test_server_stamps_interview_date(self, client, provider):
        provider.queue(END_OF_INTAKE_MARKER, report_json(interviewDate="not a date"))

        body = client.post("/intake", json={"conversation": completed_conversation()}).json()

        assert body["report"]["interviewDate"] != "not a date"
        assert body["report"]["interviewDate"].endswith("Z")

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"conversation": []},
            {"conversation": "hello"},
            {"conversation": [{"role": "robot", "content": "hi"}]},
            {"conversation": [{"role": "user"}]},
            {"conversation": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "?"}]},
        ],
    )
    def test_bad_conversation_is_400(self, client, provider, payload):
        response = client.post("/intake", json=payload)

        assert response.status_code == 400
        assert "error" in response.json()
        assert provider.calls == []

    def test_unconfigured_provider_is_500(self, notifier, repository):
        runtime = Runtime(repository=repository, notifier=notifier, provider=None)
        client = TestClient(create_app(runtime=runtime))

        response = client.post(
            "/intake",
            json={"conversation": [{"role": "user", "content": "hi"}]},
        )

        assert response.status_code == 500
        assert "not configured" in response.json()["error"]

    def test_provider_failure_is_generic_500(self, client, provider):
        provider.queue(ProviderError("upstream said: secret internal detail"))

        response = client.post(
            "/intake",
            json={"conversation": [{"role": "user", "content": "hi"}]},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch response from AI."}

    def test_invalid_report_commits_nothing(self, client, provider, notifier, repository):
        provider.queue(END_OF_INTAKE_MARKER, report_json(keyFeatures=None))

        response = client.post("/intake", json={"conversation": completed_conversation()})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate the intake report."}
        assert repository.list() == []
        assert notifier.sent == []

    def test_notification_failure_keeps_the_record(self, provider, repository):
        notifier = RecordingNotifier(error=NotificationError("smtp down"))
        runtime = Runtime(repository=repository, notifier=notifier, provider=provider)
        client = TestClient(create_app(runtime=runtime))
        provider.queue(END_OF_INTAKE_MARKER, report_json())

        response = client.post("/intake", json={"conversation": completed_conversation()})

        assert response.status_code == 500
        body = response.json()
        assert "error" in body
        assert repository.get(body["caseNumber"]) is not None
        assert len(repository.list()) == 1

    def test_idempotency_key_replays_completion(self, client, provider, notifier, repository):
        provider.queue(END_OF_INTAKE_MARKER, report_json(), END_OF_INTAKE_MARKER, report_json())
        payload = {"conversation": completed_conversation(), "idempotencyKey": "client-42"}

        first = client.post("/intake", json=payload).json()
        second = client.post("/intake", json=payload).json()

        assert first["caseNumber"] == second["caseNumber"]
        assert len(repository.list()) == 1
        assert len(notifier.sent) == 1

    @pytest.mark.parametrize(
        "conversation",
        [
            [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "?"}],
            [{"role": "robot", "content": "hi"}],
            [],
        ],
    )
    def test_bad_conversation_is_400_before_config_check(self, notifier, repository, conversation):
        client = TestClient(
            create_app(runtime=Runtime(repository=repository, notifier=notifier))
        )

        response = client.post("/intake", json={"conversation": conversation})

        assert response.status_code == 400
        assert "not configured" not in response.json()["error"]

    def test_keyed_retry_after_notification_failure_does_not_resend(self, provider, repository):
        """A replayed case is returned as complete without a second notification."""
        notifier = RecordingNotifier(error=NotificationError("smtp down"))
        client = TestClient(
            create_app(
                runtime=Runtime(repository=repository, notifier=notifier, provider=provider)
            )
        )
        provider.queue(END_OF_INTAKE_MARKER, report_json(), END_OF_INTAKE_MARKER, report_json())
        payload = {"conversation": completed_conversation(), "idempotencyKey": "retry-1"}

        failed = client.post("/intake", json=payload)
        retried = client.post("/intake", json=payload)

        assert failed.status_code == 500
        assert retried.status_code == 200
        assert retried.json()["caseNumber"] == failed.json()["caseNumber"]
        assert len(notifier.sent) == 1
        assert len(repository.list()) == 1


class TestChatEndpoint:
    def test_reply_uses_knowledge_snippets(self, provider, notifier, repository):
        runtime = Runtime(
            repository=repository,
            notifier=notifier,
            provider=provider,
            knowledge_base=[
                KnowledgeEntry("What services do you offer?", "Automation and AI."),
                KnowledgeEntry("Where are you based?", "Athens."),
            ],
        )
        client = TestClient(create_app(runtime=runtime))
        provider.queue("We offer automation and AI solutions.")

        response = client.post("/chat", json={"message": "Which services do you offer"})

        assert response.status_code == 200
        assert response.json() == {"reply": "We offer automation and AI solutions."}
        system = provider.calls[0]["messages"][0].content
        assert "Sakis Bot" in system
        assert "Q: What services do you offer?\nA: Automation and AI." in system
        assert provider.calls[0]["messages"][1].content == "Which services do you offer"

    def test_empty_reply_falls_back(self, client, provider):
        provider.queue("   ")
        response = client.post("/chat", json={"message": "hello"})
        assert response.json() == {"reply": EMPTY_REPLY_FALLBACK}

    @pytest.mark.parametrize("payload", [{}, {"message": ""}, {"message": 5}])
    def test_missing_message_is_400(self, client, payload):
        response = client.post("/chat", json=payload)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_unconfigured_provider_is_500(self, notifier, repository):
        client = TestClient(
            create_app(runtime=Runtime(repository=repository, notifier=notifier))
        )
        response = client.post("/chat", json={"message": "hello"})
        assert response.status_code == 500
        assert "error" in response.json()

    def test_missing_message_is_400_on_unconfigured_server(self, notifier, repository):
        client = TestClient(
            create_app(runtime=Runtime(repository=repository, notifier=notifier))
        )
        response = client.post("/chat", json={})
        assert response.status_code == 400

    def test_provider_failure_is_500(self, client, provider):
        provider.queue(ProviderError("status 401"))
        response = client.post("/chat", json={"message": "hello"})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch response from AI."}


class TestVerifyDeveloper:
    def test_correct_password(self, client):
        response = client.post("/verify-developer", json={"password": "open-sesame"})
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_wrong_password(self, client):
        response = client.post("/verify-developer", json={"password": "guess"})
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_missing_password(self, client):
        assert client.post("/verify-developer", json={}).status_code == 400

    def test_unconfigured_secret(self, notifier, repository):
        client = TestClient(
            create_app(runtime=Runtime(repository=repository, notifier=notifier))
        )
        response = client.post("/verify-developer", json={"password": "x"})
        assert response.status_code == 500
        assert response.json()["success"] is False
