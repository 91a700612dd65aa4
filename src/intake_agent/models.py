"""Domain types for the intake interview and the persisted case records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CONVERSATION_ROLES = ("user", "assistant")


@dataclass(slots=True)
class ChatMessage:
    """Simple representation of a chat message compatible with this app."""

    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


Conversation = List[ChatMessage]


@dataclass(frozen=True, slots=True)
class Continue:
    """The analyst wants another answer; ``question`` goes back to the caller."""

    question: str


@dataclass(frozen=True, slots=True)
class Complete:
    """The analyst signalled the end of the interview."""

    draft: str


IntakeDecision = Continue | Complete


class Report(BaseModel):
    """Structured intake report produced by the manager persona."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    project_name: str = Field(min_length=1)
    project_summary: str = Field(min_length=1)
    key_features: List[str] = Field(min_length=1)
    estimated_timeline: str = Field(min_length=1)
    interview_date: str = Field(min_length=1)

    @field_validator("key_features")
    @classmethod
    def _features_not_blank(cls, value: List[str]) -> List[str]:
        cleaned = [item.strip() for item in value]
        if any(not item for item in cleaned):
            raise ValueError("key features must not contain blank entries")
        return cleaned

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ReportDraft(BaseModel):
    """Unconstrained report shape sent to providers as the response format."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_name: str
    project_summary: str
    key_features: List[str]
    estimated_timeline: str
    interview_date: str


@dataclass(slots=True)
class CaseRecord:
    """A finalized intake as written to the report store."""

    case_number: str
    report: Report
    full_transcript: List[ChatMessage]
    timestamp: Optional[datetime] = None
    idempotency_key: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"caseNumber": self.case_number}
        document.update(self.report.to_payload())
        document["timestamp"] = (
            self.timestamp.isoformat() if self.timestamp else None
        )
        document["fullTranscript"] = [
            message.to_dict() for message in self.full_transcript
        ]
        if self.idempotency_key:
            document["idempotencyKey"] = self.idempotency_key
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "CaseRecord":
        raw_timestamp = document.get("timestamp")
        timestamp = (
            datetime.fromisoformat(raw_timestamp)
            if isinstance(raw_timestamp, str) and raw_timestamp
            else None
        )
        transcript = [
            ChatMessage(
                role=str(item.get("role", "")),
                content=str(item.get("content", "")),
            )
            for item in document.get("fullTranscript", [])
            if isinstance(item, dict)
        ]
        return cls(
            case_number=str(document["caseNumber"]),
            report=Report.model_validate(document),
            full_transcript=transcript,
            timestamp=timestamp,
            idempotency_key=document.get("idempotencyKey"),
        )


def count_role(conversation: Sequence[ChatMessage], role: str) -> int:
    return sum(1 for message in conversation if message.role == role)
