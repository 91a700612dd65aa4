"""Unit tests for the knowledge base loader and snippet scorer."""

import json

from intake_agent.knowledge_base import (
    KnowledgeEntry,
    load_knowledge_base,
    score_entry,
    top_k,
)


def entry(question: str) -> KnowledgeEntry:
    return KnowledgeEntry(question=question, answer=f"answer to {question}")


CORPUS = [
    entry("What is workflow automation?"),
    entry("Do you build chatbots?"),
    entry("Can you automate my workflow end to end?"),
    entry("How long does automation take?"),
    entry("Which integrations do you support?"),
    entry("Is workflow automation expensive?"),
    entry("What does an automation workflow audit include?"),
    entry("Do you automate invoices?"),
    entry("Automation for small teams?"),
    entry("Workflow reviews?"),
]


class TestTopK:
    def test_automation_workflow_query(self):
        results = top_k("automation workflow", CORPUS, 7)

        assert len(results) <= 7
        tokens = ["automation", "workflow"]
        scores = [score_entry(tokens, item) for item in results]
        assert all(score >= 1 for score in scores)
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_corpus_order(self):
        results = top_k("automation workflow", CORPUS, 7)

        assert [item.question for item in results] == [
            "What is workflow automation?",
            "Is workflow automation expensive?",
            "What does an automation workflow audit include?",
            "Can you automate my workflow end to end?",
            "How long does automation take?",
            "Automation for small teams?",
            "Workflow reviews?",
        ]

    def test_zero_scores_are_excluded(self):
        results = top_k("chatbots", CORPUS)
        assert [item.question for item in results] == ["Do you build chatbots?"]

    def test_substring_matching_is_case_insensitive(self):
        assert score_entry(["AUTOMAT".lower()], entry("Do you automate invoices?")) == 1
        assert top_k("INTEGRATIONS", CORPUS)[0].question == "Which integrations do you support?"

    def test_empty_query_returns_nothing(self):
        assert top_k("   ", CORPUS) == []

    def test_default_limit_is_seven(self):
        corpus = [entry(f"automation question {index}") for index in range(12)]
        assert len(top_k("automation", corpus)) == 7


class TestLoadKnowledgeBase:
    def test_bundled_corpus_loads(self):
        entries = load_knowledge_base()
        assert entries
        assert all(item.question and item.answer for item in entries)

    def test_custom_file(self, tmp_path):
        path = tmp_path / "kb.json"
        path.write_text(
            json.dumps(
                [
                    {"question": "Q1?", "answer": "A1"},
                    {"question": "missing answer"},
                    "not an object",
                ]
            ),
            encoding="utf-8",
        )
        assert load_knowledge_base(path) == [KnowledgeEntry(question="Q1?", answer="A1")]

    def test_missing_file_gives_empty_corpus(self, tmp_path):
        assert load_knowledge_base(tmp_path / "absent.json") == []

    def test_invalid_json_gives_empty_corpus(self, tmp_path):
        path = tmp_path / "kb.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_knowledge_base(path) == []
