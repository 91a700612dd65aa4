"""Single-shot assistant answers for the ``/chat`` endpoint."""

from __future__ import annotations

import logging
from typing import Sequence

from .knowledge_base import DEFAULT_TOP_K, KnowledgeEntry, top_k
from .maf_client import CompletionProvider
from .prompts import build_chat_messages

logger = logging.getLogger(__name__)

EMPTY_REPLY_FALLBACK = (
    "Sorry, I couldn't get a proper response. Please try again."
)


class ChatAssistant:
    """Answers visitor questions, grounded on the static knowledge base."""

    def __init__(
        self,
        provider: CompletionProvider,
        knowledge_base: Sequence[KnowledgeEntry] = (),
        *,
        snippet_limit: int = DEFAULT_TOP_K,
    ) -> None:
        self._provider = provider
        self._knowledge_base = tuple(knowledge_base)
        self._snippet_limit = snippet_limit

    async def reply(self, message: str) -> str:
        snippets = top_k(message, self._knowledge_base, self._snippet_limit)
        logger.info("Answering chat message with %d snippets", len(snippets))
        response = await self._provider.complete(
            build_chat_messages(
                message,
                [snippet.to_dict() for snippet in snippets],
            )
        )
        return response.content.strip() or EMPTY_REPLY_FALLBACK
