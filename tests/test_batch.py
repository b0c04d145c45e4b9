"""
Tests for batch evidence matching

Tests cover:
- Prompt contents (catalogue, edges, thresholds)
- Score floor, per-edge cap, ordering, unknown ids
- Every arrow id present whatever goes wrong
"""

import json

import pytest

from muse.config import RetrievalConfig
from muse.corpus.provider import InMemoryCorpusProvider
from muse.models.evidence import EdgeQuery
from muse.retrieval.batch import BatchMatchEvaluator, build_batch_prompt
from tests.helpers import SPONSORS_EDGE, ScriptedLLM, make_record


def batch_reply(results: dict) -> str:
    return "```json\n" + json.dumps({"results": results}) + "\n```"


def match(evidence_id: str, score, **extra) -> dict:
    return {"evidenceId": evidence_id, "score": score, "reasoning": "fits", **extra}


@pytest.fixture
def edges():
    return [
        EdgeQuery(arrow_id="arrow-1", from_text=SPONSORS_EDGE[0], to_text=SPONSORS_EDGE[1]),
        EdgeQuery(arrow_id="arrow-2", from_text="Offer grants", to_text="Developers stay"),
    ]


@pytest.fixture
def config():
    return RetrievalConfig()


class TestBatchPrompt:
    """Test prompt construction."""

    def test_prompt_contents(self, sample_records, edges):
        prompt = build_batch_prompt(sample_records, edges, min_score=70, max_matches=3)
        assert "[Evidence 1] GitHub Sponsors" in prompt
        assert "GitHub Sponsors funding for maintainers → maintainer activity on open source projects (positive)" in prompt
        assert "(arrowId: arrow-1)" in prompt
        assert f'Source: "{SPONSORS_EDGE[0]}"' in prompt
        assert "score >= 70" in prompt
        assert "Include ALL arrow IDs" in prompt


class TestBatchMatchEvaluator:
    """Test the single-call evaluator."""

    @pytest.mark.asyncio
    async def test_filters_enriches_and_sorts(self, corpus, edges, config):
        llm = ScriptedLLM(responses=[batch_reply({
            "arrow-1": [match("4", 72), match("1", 95, interventionText="Sponsors"), match("2", 40)],
            "arrow-2": [match("2", 70)],
        })])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)

        assert [m.evidence_id for m in results["arrow-1"]] == ["1", "4"]
        top = results["arrow-1"][0]
        assert top.title == "GitHub Sponsors and open source maintainer activity"
        assert top.strength == "4"
        assert top.has_warning is False
        assert top.intervention_text == "Sponsors"
        assert results["arrow-2"][0].score == 70
        assert results["arrow-2"][0].has_warning is True

    @pytest.mark.asyncio
    async def test_cap_per_edge(self, edges, config):
        records = [
            make_record(str(i), title=f"R{i}", strength=3,
                        results=[{"intervention": "x", "outcome_variable": "y"}])
            for i in range(1, 6)
        ]
        llm = ScriptedLLM(responses=[batch_reply({
            "arrow-1": [match(str(i), 70 + i) for i in range(1, 6)],
        })])
        evaluator = BatchMatchEvaluator(llm, InMemoryCorpusProvider(records), config)
        results = await evaluator.find_evidence_for_all_edges(edges)

        assert [m.evidence_id for m in results["arrow-1"]] == ["5", "4", "3"]
        assert results["arrow-2"] == []

    @pytest.mark.asyncio
    async def test_overrides(self, corpus, edges, config):
        llm = ScriptedLLM(responses=[batch_reply({
            "arrow-1": [match("1", 55), match("4", 50)],
        })])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(
            edges, min_score=50, max_matches_per_edge=1,
        )
        assert [m.evidence_id for m in results["arrow-1"]] == ["1"]
        assert "score >= 50" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_unknown_evidence_ids_are_dropped(self, corpus, edges, config):
        llm = ScriptedLLM(responses=[batch_reply({
            "arrow-1": [match("999", 99), match("3", 99), match("1", 90)],
        })])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)
        assert [m.evidence_id for m in results["arrow-1"]] == ["1"]

    @pytest.mark.asyncio
    async def test_repeated_evidence_keeps_best_score(self, corpus, edges, config):
        llm = ScriptedLLM(responses=[batch_reply({
            "arrow-1": [match("1", 85, reasoning="second look"), match("4", 80), match("1", 90)],
        })])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)

        assert [m.evidence_id for m in results["arrow-1"]] == ["1", "4"]
        assert results["arrow-1"][0].score == 90
        assert results["arrow-1"][0].reasoning == "fits"

    @pytest.mark.asyncio
    async def test_missing_arrow_in_reply(self, corpus, edges, config):
        llm = ScriptedLLM(responses=[batch_reply({"arrow-1": [match("1", 90)]})])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)
        assert set(results) == {"arrow-1", "arrow-2"}
        assert results["arrow-2"] == []

    @pytest.mark.asyncio
    async def test_malformed_reply_gives_empty_lists(self, corpus, edges, config):
        llm = ScriptedLLM(responses=["Sorry, I can't help with that."])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)
        assert results == {"arrow-1": [], "arrow-2": []}

    @pytest.mark.asyncio
    async def test_model_error_gives_empty_lists(self, corpus, edges, config):
        llm = ScriptedLLM(error=RuntimeError("quota"))
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)
        assert results == {"arrow-1": [], "arrow-2": []}

    @pytest.mark.asyncio
    async def test_no_edges(self, corpus, config):
        llm = ScriptedLLM()
        assert await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges([]) == {}
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_no_records_with_results_skips_call(self, edges, config):
        corpus = InMemoryCorpusProvider([make_record("9", title="Notes only")])
        llm = ScriptedLLM()
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)
        assert results == {"arrow-1": [], "arrow-2": []}
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_empty_edges_are_not_sent(self, corpus, config):
        edges = [
            EdgeQuery(arrow_id="ok", from_text="a", to_text="b"),
            EdgeQuery(arrow_id="blank", from_text="", to_text="b"),
        ]
        llm = ScriptedLLM(responses=[batch_reply({"ok": [], "blank": [match("1", 99)]})])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)

        assert results == {"ok": [], "blank": []}
        assert "arrowId: blank" not in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_numeric_ids_and_texts_are_coerced(self, corpus, edges, config):
        llm = ScriptedLLM(responses=[batch_reply({
            "arrow-1": [{"evidenceId": 1, "score": "88", "interventionText": 5, "outcomeText": None}],
        })])
        results = await BatchMatchEvaluator(llm, corpus, config).find_evidence_for_all_edges(edges)
        top = results["arrow-1"][0]
        assert top.evidence_id == "1"
        assert top.score == 88
        assert top.intervention_text == "5"
        assert top.outcome_text is None
