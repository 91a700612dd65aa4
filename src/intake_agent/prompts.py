"""Prompt scaffolding for the chat assistant and the intake personas."""

from __future__ import annotations

from dataclasses import dataclass
from string import Template
from typing import List, Optional, Sequence

from .models import ChatMessage

END_OF_INTAKE_MARKER = "[END_OF_INTAKE]"

SPEAKER_LABELS = {"user": "Client", "assistant": "Analyst"}


@dataclass(slots=True)
class PersonaPrompt:
    """A persona's system instruction plus its optional request template."""

    system: Template
    request: Optional[Template] = None


ANALYST_PROMPT = PersonaPrompt(
    system=Template(
        """
        You are a senior Business Analyst running a discovery interview for
        Sakis Athan, an AI & Automation Engineer. A prospective client is
        describing a project they want built. Your job is to understand it
        well enough that a project manager can scope it.

        Probe for the details that are still missing, in particular:
        - Target audience: who the users are and what they need.
        - Integrations: which existing systems, tools, or data sources the
          solution must connect to.
        - Success metrics: how the client will measure that the project
          worked.
        - Workflow detail: the concrete steps of the process to be automated
          or supported, including exceptions.

        Rules:
        - Ask exactly ONE open-ended question per turn. Reference earlier
          answers to show active listening. Do not ask multiple questions at
          once and do not summarize the interview.
        - NEVER end the interview on your first or second turn.
        - Only end the interview once the conversation contains evidence
          that the users, the integrations, and the success metrics have ALL
          been covered.
        - When, and only when, you have enough information, reply with a
          short thank-you sentence followed by the exact marker
          $marker and nothing else.
        """.strip()
    ),
)

MANAGER_PROMPT = PersonaPrompt(
    system=Template(
        "You are a senior project manager. You turn client interview "
        "transcripts into concise, accurate project intake reports. Use only "
        "facts stated in the transcript."
    ),
    request=Template(
        """
Read the interview transcript below and produce the intake report.

Respond ONLY with a single JSON object matching this schema, with no
markdown fences or commentary:
{
  "projectName": string,
  "projectSummary": string,
  "keyFeatures": [string],
  "estimatedTimeline": string,
  "interviewDate": string
}
Field guidance:
- projectName: a short name for the project.
- projectSummary: two to four sentences describing what the client needs.
- keyFeatures: the main features or capabilities the client asked for.
- estimatedTimeline: your free-form delivery estimate, e.g. "4-6 weeks".
- interviewDate: copy this value verbatim: $interview_date
Every field is required and must be non-empty.

Interview transcript:
<<<
$transcript
>>>""".strip()
    ),
)

CHAT_SYSTEM_PROMPT = (
    "You are 'Sakis Bot', a friendly and professional AI assistant for Sakis "
    "Athan, an AI & Automation Engineer. Your purpose is to answer questions "
    "about his services and encourage potential clients to get in touch. "
    "Keep your answers concise and helpful. Services include: Business "
    "Process Automation, AI-Powered Solutions, and Custom System "
    "Integrations. Contact info: sakissystems@gmail.com. Always guide users "
    "to the contact form or direct contact for detailed project discussions."
)

CHAT_CONTEXT_TEMPLATE = Template(
    "Use the following knowledge base entries when they are relevant:\n"
    "$snippets"
)


def analyst_system_prompt() -> str:
    return ANALYST_PROMPT.system.substitute(
        marker=END_OF_INTAKE_MARKER
    )


def render_transcript(conversation: Sequence[ChatMessage]) -> str:
    """Render a conversation as alternating ``Client:``/``Analyst:`` lines."""

    lines: List[str] = []
    for message in conversation:
        speaker = SPEAKER_LABELS.get(message.role, message.role.title())
        lines.append(f"{speaker}: {message.content.strip()}")
    return "\n".join(lines)


def build_analyst_messages(
    conversation: Sequence[ChatMessage],
) -> List[ChatMessage]:
    """Prepend the analyst instruction to the caller's conversation."""

    messages = [ChatMessage(role="system", content=analyst_system_prompt())]
    messages.extend(
        ChatMessage(role=message.role, content=message.content)
        for message in conversation
    )
    return messages


def build_manager_messages(
    conversation: Sequence[ChatMessage],
    interview_date: str,
) -> List[ChatMessage]:
    """Build the structured-report request; the transcript is the only evidence."""

    assert MANAGER_PROMPT.request is not None  # for type checkers
    request = MANAGER_PROMPT.request.substitute(
        interview_date=interview_date,
        transcript=render_transcript(conversation),
    )
    return [
        ChatMessage(role="system", content=MANAGER_PROMPT.system.template),
        ChatMessage(role="user", content=request),
    ]


def build_chat_messages(
    message: str,
    snippets: Sequence[dict],
) -> List[ChatMessage]:
    system = CHAT_SYSTEM_PROMPT
    if snippets:
        rendered = "\n".join(
            f"Q: {item['question']}\nA: {item['answer']}" for item in snippets
        )
        system = (
            f"{system}\n\n"
            f"{CHAT_CONTEXT_TEMPLATE.substitute(snippets=rendered)}"
        )
    return [
        ChatMessage(role="system", content=system),
        ChatMessage(role="user", content=message),
    ]
