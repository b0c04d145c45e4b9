"""
Batch Match Evaluator

Scores every edge of a logic model against the whole evidence catalogue
in a single language model call, then filters, enriches and caps the
matches per edge.
"""

from __future__ import annotations

import logging
import textwrap
import time
from typing import Any, Optional

from muse.agent.llm_client import LanguageModel
from muse.config import RetrievalConfig, get_retrieval_config
from muse.corpus.provider import CorpusProvider, list_with_results
from muse.models.evidence import (
    EdgeQuery,
    EvidenceMatch,
    EvidenceRecord,
    clamp_score,
    sort_matches,
)
from muse.retrieval.parsing import parse_batch_results

_logger = logging.getLogger(__name__)


_BATCH_TEMPLATE = textwrap.dedent("""\
    You are an evidence matching specialist validating causal
    relationships in logic models against curated research evidence.

    ## Evidence Catalogue
    {catalogue}

    ## Edges
    {edges}

    ## Scoring
    Score each evidence record (0-100) by how well its intervention →
    outcome results support an edge (source = intervention/activity,
    target = outcome/impact):
    - 90-100: direct match (same concepts)
    - 70-89: strong support (related concepts, good alignment)
    - 50-69: moderate support
    - 0-49: weak or no support

    Return only matches with score >= {min_score}, at most
    {max_matches} per edge. Most edges have no direct research backing;
    return an empty list rather than forcing a weak match.

    Return JSON with this structure:
    ```json
    {{
      "results": {{
        "<arrowId>": [
          {{
            "evidenceId": "00",
            "score": 95,
            "confidence": 90,
            "reasoning": "Direct match...",
            "interventionText": "...",
            "outcomeText": "..."
          }}
        ],
        "<arrowId>": []
      }}
    }}
    ```

    Include ALL arrow IDs in results, even if they have empty match arrays.""")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def format_catalogue(records: list[EvidenceRecord]) -> str:
    blocks = []
    for record in records:
        lines = [
            f"[Evidence {record.evidence_id}] {record.title}",
            f"  Strength: {record.strength if record.strength is not None else 'not reported'}",
        ]
        for r in record.results:
            lines.append(f"  - {r.intervention} → {r.outcome_variable} ({r.effect.value})")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_edges(edges: list[EdgeQuery]) -> str:
    return "\n\n".join(
        f'[Edge {i}] (arrowId: {edge.arrow_id})\n'
        f'  Source: "{edge.from_text}"\n'
        f'  Target: "{edge.to_text}"'
        for i, edge in enumerate(edges)
    )


def build_batch_prompt(
    records: list[EvidenceRecord],
    edges: list[EdgeQuery],
    min_score: int,
    max_matches: int,
) -> str:
    return _BATCH_TEMPLATE.format(
        catalogue=format_catalogue(records),
        edges=format_edges(edges),
        min_score=min_score,
        max_matches=max_matches,
    )


class BatchMatchEvaluator:
    """
    One model call for many edges.

    Every input arrow id is present in the result. Anything that goes
    wrong with the call or its reply yields empty lists, never an error.
    """

    def __init__(
        self,
        llm: LanguageModel,
        corpus: CorpusProvider,
        config: Optional[RetrievalConfig] = None,
    ):
        self.llm = llm
        self.corpus = corpus
        self.config = config or get_retrieval_config()

    async def find_evidence_for_all_edges(
        self,
        edges: list[EdgeQuery],
        *,
        min_score: Optional[int] = None,
        max_matches_per_edge: Optional[int] = None,
    ) -> dict[str, list[EvidenceMatch]]:
        """
        Evidence matches keyed by arrow id.

        Args:
            edges: Edges to evaluate
            min_score: Inclusive score floor (default ``batch_min_score``)
            max_matches_per_edge: Cap per edge (default ``max_matches_per_edge``)
        """
        if not edges:
            return {}

        min_score = self.config.batch_min_score if min_score is None else min_score
        cap = self.config.max_matches_per_edge if max_matches_per_edge is None else max_matches_per_edge
        empty = {edge.arrow_id: [] for edge in edges}

        records = await list_with_results(self.corpus)
        if not records:
            _logger.info("No evidence with results; skipping batch call")
            return empty

        searchable = [e for e in edges if not e.is_empty]
        if not searchable:
            return empty

        prompt = build_batch_prompt(records, searchable, min_score, cap)
        start = time.monotonic()
        try:
            reply = await self.llm.complete(prompt)
        except Exception as exc:
            _logger.error("Batch evidence call failed for %d edges: %s", len(searchable), exc)
            return empty
        _logger.info(
            "Batch evidence reply for %d edges in %.0fms (%d chars)",
            len(searchable), (time.monotonic() - start) * 1000, len(reply or ""),
        )

        parsed = parse_batch_results(reply)
        if parsed is None:
            _logger.warning("Batch reply preview: %.500s", reply)
            return empty

        by_id = {r.evidence_id: r for r in records}
        results = dict(empty)
        for edge in searchable:
            results[edge.arrow_id] = self._enrich(parsed.get(edge.arrow_id, []), by_id, min_score, cap)

        total = sum(len(m) for m in results.values())
        _logger.info("Batch search kept %d matches across %d edges", total, len(edges))
        return results

    def _enrich(
        self,
        raw_matches: list[dict[str, Any]],
        by_id: dict[str, EvidenceRecord],
        min_score: int,
        cap: int,
    ) -> list[EvidenceMatch]:
        best: dict[str, EvidenceMatch] = {}
        for raw in raw_matches:
            evidence_id = str(raw.get("evidenceId", "")).strip()
            record = by_id.get(evidence_id)
            if record is None:
                _logger.debug("Dropping match for unknown evidence %r", evidence_id)
                continue
            score = clamp_score(raw.get("score"))
            if score < min_score:
                continue
            # same record listed twice for one arrow: keep the higher score
            current = best.get(evidence_id)
            if current is not None and current.score >= score:
                continue
            best[evidence_id] = EvidenceMatch.from_record(
                record,
                score=score,
                confidence=raw.get("confidence"),
                reasoning=str(raw.get("reasoning") or ""),
                intervention_text=_text(raw.get("interventionText")),
                outcome_text=_text(raw.get("outcomeText")),
                quality_threshold=self.config.quality_threshold,
            )
        return sort_matches(list(best.values()))[:cap]
