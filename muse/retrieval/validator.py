"""
Evidence Validator

Asks the language model whether one evidence record supports one causal
edge, for a set of candidate records with bounded concurrency.
"""

from __future__ import annotations

import asyncio
import logging
import textwrap
from typing import Optional

from muse.agent.llm_client import LanguageModel
from muse.config import RetrievalConfig, get_retrieval_config
from muse.models.evidence import EvidenceMatch, EvidenceRecord, sort_matches
from muse.retrieval.parsing import parse_validation_verdict

_logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Prompt
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_VALIDATION_TEMPLATE = textwrap.dedent("""\
    You are an expert policy analyst evaluating research evidence.

    ## Task
    Determine if the research evidence below supports the causal
    relationship in a logic model.

    ## Logic Model Edge
    - Source (Intervention/Activity): "{from_text}"
    - Target (Output/Outcome): "{to_text}"

    ## Research Evidence
    - Evidence ID: {evidence_id}
    - Title: {title}
    - Strength: {strength} (Maryland Scientific Method Scale: 0-5)
    - Methodologies: {methodologies}

    ## Evidence Results (Intervention → Outcome)
    {results_block}

    ## Instructions
    1. Decide if ANY of the results support the edge.
    2. Consider whether the intervention aligns with the source, the
       outcome aligns with the target, and the causal link is plausible.
    3. Be strict but fair. Do not match on vague similarities.

    Return ONLY valid JSON in this exact format:
    {{
      "match": true or false,
      "score": 0-100,
      "confidence": 0-100,
      "reasoning": "2-3 sentences",
      "interventionText": "the result intervention that matched, or null",
      "outcomeText": "the result outcome that matched, or null"
    }}""")


def build_validation_prompt(record: EvidenceRecord, from_text: str, to_text: str) -> str:
    results_block = "\n\n".join(
        f'{i}. Intervention: "{r.intervention}"\n'
        f'   Outcome: "{r.outcome_variable}"\n'
        f"   Effect: {r.effect.value}"
        for i, r in enumerate(record.results, start=1)
    )
    return _VALIDATION_TEMPLATE.format(
        from_text=from_text,
        to_text=to_text,
        evidence_id=record.evidence_id,
        title=record.title,
        strength=record.strength if record.strength is not None else "not reported",
        methodologies=record.methodology_text or "not specified",
        results_block=results_block,
    )


class EvidenceValidator:
    """
    Per-record model validation of candidate evidence.

    A record is kept when the model says ``match`` and the score is
    strictly above ``validation_score_threshold``. Malformed replies and
    calls that fail after retries count as "no match".
    """

    def __init__(self, llm: LanguageModel, config: Optional[RetrievalConfig] = None):
        self.llm = llm
        self.config = config or get_retrieval_config()

    async def evaluate(
        self,
        record: EvidenceRecord,
        from_text: str,
        to_text: str,
    ) -> Optional[EvidenceMatch]:
        """Validate one record against one edge."""
        if not record.has_results:
            return None

        prompt = build_validation_prompt(record, from_text, to_text)
        try:
            reply = await self.llm.complete(prompt)
        except Exception as exc:
            _logger.warning("Validation of %s failed: %s", record.evidence_id, exc)
            return None

        verdict = parse_validation_verdict(reply)
        if verdict is None:
            _logger.debug("Malformed verdict for %s", record.evidence_id)
            return None
        if not verdict.match or verdict.score <= self.config.validation_score_threshold:
            return None

        first = record.results[0]
        return EvidenceMatch.from_record(
            record,
            score=verdict.score,
            confidence=verdict.confidence,
            reasoning=verdict.reasoning,
            intervention_text=verdict.intervention_text or first.intervention,
            outcome_text=verdict.outcome_text or first.outcome_variable,
            quality_threshold=self.config.quality_threshold,
        )

    async def validate(
        self,
        records: list[EvidenceRecord],
        from_text: str,
        to_text: str,
    ) -> list[EvidenceMatch]:
        """Validate many records; returns kept matches, best first."""
        semaphore = asyncio.Semaphore(self.config.validation_concurrency)

        async def _bounded(record: EvidenceRecord) -> Optional[EvidenceMatch]:
            async with semaphore:
                return await self.evaluate(record, from_text, to_text)

        verdicts = await asyncio.gather(*(_bounded(r) for r in records))
        return sort_matches([m for m in verdicts if m is not None])
