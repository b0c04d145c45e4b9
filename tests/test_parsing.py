"""
Tests for model output parsing

Tests cover:
- Strategy order (fenced, raw, embedded) and repair
- Validation verdict extraction
- Batch result extraction
"""

import pytest

from muse.retrieval.parsing import (
    ParseStrategy,
    parse_batch_results,
    parse_validation_verdict,
    parse_with_fallbacks,
)


class TestParseWithFallbacks:
    """Test the strategy chain."""

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"match": true, "score": 80}\n```\nThanks'
        outcome = parse_with_fallbacks(text)
        assert outcome.strategy is ParseStrategy.FENCED
        assert outcome.data == {"match": True, "score": 80}

    def test_raw_reply(self):
        outcome = parse_with_fallbacks('{"a": 1}')
        assert outcome.strategy is ParseStrategy.RAW
        assert outcome.data == {"a": 1}

    def test_embedded_object(self):
        outcome = parse_with_fallbacks('Sure! {"results": {"x": []}} Hope it helps.', "results")
        assert outcome.strategy is ParseStrategy.EMBEDDED
        assert outcome.data == {"results": {"x": []}}

    def test_repairs_trailing_commas_and_bare_keys(self):
        outcome = parse_with_fallbacks('{match: true, score: 75,}')
        assert outcome.ok
        assert outcome.data == {"match": True, "score": 75}

    def test_required_key_missing(self):
        assert not parse_with_fallbacks('{"other": 1}', required_key="results").ok

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_malformed(self, text):
        outcome = parse_with_fallbacks(text)
        assert not outcome.ok
        assert outcome.strategy is None


class TestValidationVerdict:
    """Test single-edge verdicts."""

    def test_full_verdict(self):
        verdict = parse_validation_verdict(
            '{"match": true, "score": 88, "confidence": 70, "reasoning": "Direct",'
            ' "interventionText": "Sponsors", "outcomeText": "Activity"}'
        )
        assert verdict.match is True
        assert verdict.score == 88
        assert verdict.confidence == 70
        assert verdict.intervention_text == "Sponsors"
        assert verdict.outcome_text == "Activity"

    def test_string_booleans_and_scores(self):
        verdict = parse_validation_verdict('{"match": "true", "score": "65"}')
        assert verdict.match is True
        assert verdict.score == 65
        assert verdict.confidence is None

    def test_missing_score_is_malformed(self):
        assert parse_validation_verdict('{"match": true}') is None

    def test_prose_is_malformed(self):
        assert parse_validation_verdict("I think this matches.") is None


class TestBatchResults:
    """Test batch reply extraction."""

    def test_results_mapping(self):
        parsed = parse_batch_results(
            '```json\n{"results": {"a1": [{"evidenceId": "1", "score": 90}], "a2": []}}\n```'
        )
        assert parsed == {"a1": [{"evidenceId": "1", "score": 90}], "a2": []}

    def test_non_dict_entries_are_dropped(self):
        parsed = parse_batch_results('{"results": {"a1": ["junk", {"evidenceId": "1"}], "a2": "x"}}')
        assert parsed == {"a1": [{"evidenceId": "1"}]}

    def test_results_not_a_mapping(self):
        assert parse_batch_results('{"results": []}') is None

    def test_garbage(self):
        assert parse_batch_results("the model refused") is None
