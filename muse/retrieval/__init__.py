"""
Retrieval

Edge-level evidence matching: hybrid per-edge search and single-call
batch evaluation.
"""

from muse.retrieval.batch import BatchMatchEvaluator, build_batch_prompt
from muse.retrieval.hybrid import HybridRetrievalEngine, build_edge_query
from muse.retrieval.parsing import (
    ParseOutcome,
    ParseStrategy,
    ValidationVerdict,
    parse_batch_results,
    parse_validation_verdict,
    parse_with_fallbacks,
)
from muse.retrieval.validator import EvidenceValidator, build_validation_prompt

__all__ = [
    "BatchMatchEvaluator",
    "build_batch_prompt",
    "HybridRetrievalEngine",
    "build_edge_query",
    "ParseOutcome",
    "ParseStrategy",
    "ValidationVerdict",
    "parse_batch_results",
    "parse_validation_verdict",
    "parse_with_fallbacks",
    "EvidenceValidator",
    "build_validation_prompt",
]
