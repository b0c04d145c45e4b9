"""
Hybrid Retrieval Engine

Evidence for a single causal edge in two stages:

1. **Narrow** - embed "<from> causes <to>", pull the nearest chunks from
   the vector index and map them back to distinct evidence records.
2. **Validate** - ask the language model about each candidate.

When the index is missing or empty, or narrowing fails for any reason,
every record with results is validated instead (exhaustive path).
"""

import logging
import time
from typing import Optional

from muse.config import RetrievalConfig, get_retrieval_config
from muse.corpus.provider import CorpusProvider, list_with_results
from muse.haystack_svc.embedder import Embedder
from muse.haystack_svc.vector_index import VectorIndex
from muse.models.evidence import EvidenceMatch, EvidenceRecord
from muse.retrieval.validator import EvidenceValidator

logger = logging.getLogger(__name__)


def build_edge_query(from_text: str, to_text: str) -> str:
    return f"{from_text} causes {to_text}"


class HybridRetrievalEngine:
    """Vector narrowing followed by model validation, with exhaustive fallback."""

    def __init__(
        self,
        corpus: CorpusProvider,
        embedder: Embedder,
        index: VectorIndex,
        validator: EvidenceValidator,
        config: Optional[RetrievalConfig] = None,
    ):
        self.corpus = corpus
        self.embedder = embedder
        self.index = index
        self.validator = validator
        self.config = config or get_retrieval_config()

    async def find_evidence_for_edge(self, from_text: str, to_text: str) -> list[EvidenceMatch]:
        """
        Matches for one edge, best first.

        Never raises: if both the indexed and the exhaustive path fail,
        the error is logged and no matches are returned.
        """
        if not from_text or not from_text.strip() or not to_text or not to_text.strip():
            return []

        try:
            matches = await self._search_indexed(from_text, to_text)
            if matches is not None:
                return matches
        except Exception as exc:
            logger.warning("Indexed evidence search failed (%s); falling back to exhaustive", exc)

        try:
            return await self._search_exhaustive(from_text, to_text)
        except Exception:
            logger.exception("Exhaustive evidence search failed")
            return []

    async def _search_indexed(
        self, from_text: str, to_text: str,
    ) -> Optional[list[EvidenceMatch]]:
        """Indexed path; None means the index is absent or empty."""
        stats = await self.index.stats()
        if not stats.exists or stats.count == 0:
            logger.info("Vector index is empty; using exhaustive search")
            return None

        start = time.monotonic()
        query = build_edge_query(from_text, to_text)
        vector = await self.embedder.embed(query)
        hits = await self.index.query(
            vector,
            limit=self.config.rag_top_k,
            score_threshold=self.config.rag_similarity_floor,
        )
        logger.info(
            "Vector search returned %d chunks in %.0fms for %.50r",
            len(hits), (time.monotonic() - start) * 1000, query,
        )
        if not hits:
            return []

        candidates = await self._records_for(h.chunk.evidence_id for h in hits)
        logger.info("Validating %d candidate records", len(candidates))
        return await self.validator.validate(candidates, from_text, to_text)

    async def _records_for(self, evidence_ids) -> list[EvidenceRecord]:
        """Resolve ids in rank order, dropping duplicates and records without results."""
        by_id = {r.evidence_id: r for r in await self.corpus.list_all()}
        seen: set[str] = set()
        records = []
        for evidence_id in evidence_ids:
            if evidence_id in seen:
                continue
            seen.add(evidence_id)
            record = by_id.get(evidence_id)
            if record is not None and record.has_results:
                records.append(record)
        return records

    async def _search_exhaustive(self, from_text: str, to_text: str) -> list[EvidenceMatch]:
        records = await list_with_results(self.corpus)
        if not records:
            return []
        logger.info("Exhaustive search over %d records", len(records))
        return await self.validator.validate(records, from_text, to_text)
