"""Static question/answer knowledge base and its lexical snippet scorer."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 7


@dataclass(frozen=True, slots=True)
class KnowledgeEntry:
    """One question/answer pair from the corpus."""

    question: str
    answer: str

    def to_dict(self) -> dict:
        return {"question": self.question, "answer": self.answer}


def score_entry(tokens: Sequence[str], entry: KnowledgeEntry) -> int:
    """Count query tokens that occur as substrings of the entry question."""

    question = entry.question.lower()
    return sum(1 for token in tokens if token in question)


def top_k(
    query: str,
    corpus: Sequence[KnowledgeEntry],
    k: int = DEFAULT_TOP_K,
) -> List[KnowledgeEntry]:
    """Return up to ``k`` entries ranked by token overlap with ``query``.

    Entries scoring zero are dropped; ties keep corpus order.
    """

    tokens = query.lower().split()
    if not tokens or k <= 0:
        return []
    scored: List[Tuple[int, KnowledgeEntry]] = []
    for entry in corpus:
        score = score_entry(tokens, entry)
        if score > 0:
            scored.append((score, entry))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [entry for _, entry in scored[:k]]


def _coerce_entries(payload: Any) -> List[KnowledgeEntry]:
    if not isinstance(payload, list):
        raise ValueError("knowledge base must be a JSON array")
    entries: List[KnowledgeEntry] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        question = item.get("question")
        answer = item.get("answer")
        if isinstance(question, str) and isinstance(answer, str):
            entries.append(KnowledgeEntry(question=question, answer=answer))
    return entries


def load_knowledge_base(path: Optional[Path] = None) -> List[KnowledgeEntry]:
    """Load the corpus once at startup; failures yield an empty corpus."""

    try:
        if path is None:
            raw = (
                resources.files("intake_agent")
                .joinpath("data/knowledge_base.json")
                .read_text(encoding="utf-8")
            )
            source = "bundled knowledge base"
        else:
            raw = path.read_text(encoding="utf-8")
            source = str(path)
        entries = _coerce_entries(json.loads(raw))
    except (OSError, ValueError) as exc:
        logger.warning("Knowledge base unavailable (%s); /chat runs without snippets.", exc)
        return []
    logger.info("Loaded %d knowledge base entries from %s", len(entries), source)
    return entries
