"""
Evidence Indexing Service

Offline sync from the evidence corpus into the vector index:
- canonical text per record (header, metadata, result tuples, citations)
- structure-aware chunking with Haystack's RecursiveDocumentSplitter
- per-chunk embeddings, batched across records
- idempotent upserts keyed by ``<evidenceId>-chunk-<n>``
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from haystack import Document
from haystack.components.preprocessors import RecursiveDocumentSplitter

from muse.config import IndexingConfig, get_indexing_config
from muse.corpus.provider import CorpusProvider
from muse.haystack_svc.embedder import Embedder
from muse.haystack_svc.vector_index import IndexStats, VectorIndex
from muse.models.evidence import EvidenceChunk, EvidenceRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class SyncResult:
    """Outcome of a full corpus sync."""
    embedded_count: int = 0
    chunk_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def build_evidence_text(record: EvidenceRecord) -> str:
    """Render the canonical, embeddable text for one record."""
    parts = [f"Evidence ID: {record.evidence_id}", f"Title: {record.title}", ""]

    if record.strength is not None:
        parts.append(
            f"Evidence Strength: {record.strength}/5 (Maryland Scientific Method Scale)"
        )
    if record.methodology_text:
        parts.append(f"Methodologies: {record.methodology_text}")
    if record.tags:
        parts.append(f"Tags: {', '.join(record.tags)}")

    if record.results:
        parts.append("")
        parts.append("Intervention → Outcome Relationships:")
        for i, result in enumerate(record.results, start=1):
            parts.append(
                f"{i}. {result.intervention} → {result.outcome_variable} "
                f"(Effect: {result.effect.value})"
            )

    if record.citations:
        parts.append("")
        parts.append("Citations:")
        for citation in record.citations:
            parts.append(f"- {citation.name}")

    return "\n".join(parts).strip()


class EvidenceIndexingService:
    """
    Keeps the vector index in step with the corpus.

    Records are processed in batches of ``batch_size``: batches run one
    after another, records inside a batch are embedded concurrently.
    A failing record is reported in ``SyncResult.errors`` and does not
    stop the rest of the sync.
    """

    def __init__(
        self,
        corpus: CorpusProvider,
        embedder: Embedder,
        index: VectorIndex,
        config: Optional[IndexingConfig] = None,
    ):
        self.corpus = corpus
        self.embedder = embedder
        self.index = index
        self.config = config or get_indexing_config()
        self._splitter = RecursiveDocumentSplitter(
            split_length=self.config.chunk_size,
            split_overlap=self.config.chunk_overlap,
            split_unit="char",
            separators=["\n\n", "\n", ". ", " "],
        )
        self._splitter.warm_up()

    def chunk_text(self, text: str) -> list[str]:
        """Split canonical text into overlapping chunks."""
        if not text.strip():
            return []
        result = self._splitter.run(documents=[Document(content=text)])
        return [doc.content for doc in result["documents"] if doc.content and doc.content.strip()]

    async def embed_record(self, record: EvidenceRecord) -> int:
        """Chunk, embed and upsert one record. Returns the chunk count."""
        texts = self.chunk_text(build_evidence_text(record))
        vectors = await asyncio.gather(*(self.embedder.embed(t) for t in texts))

        chunks = [
            EvidenceChunk(
                chunk_id=EvidenceChunk.make_id(record.evidence_id, idx),
                vector=vector,
                text=text,
                evidence_id=record.evidence_id,
                chunk_index=idx,
                title=record.title,
            )
            for idx, (text, vector) in enumerate(zip(texts, vectors))
        ]
        await self.index.upsert(chunks)
        return len(chunks)

    async def embed_all(
        self,
        clear_first: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """
        Embed every corpus record into the index.

        Args:
            clear_first: Drop the index before repopulating it
            progress: Called with (current, total, evidence_id) per record

        Returns:
            SyncResult with counts and per-record error strings
        """
        if clear_first:
            logger.info("Clearing vector index before sync")
            await self.index.clear()

        records = await self.corpus.list_all()
        total = len(records)
        result = SyncResult()
        done = 0
        batch_size = self.config.batch_size

        for start in range(0, total, batch_size):
            batch = records[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.embed_record(r) for r in batch),
                return_exceptions=True,
            )
            for record, outcome in zip(batch, outcomes):
                done += 1
                if isinstance(outcome, BaseException):
                    logger.warning("Embedding %s failed: %s", record.evidence_id, outcome)
                    result.errors.append(f"{record.evidence_id}: {outcome}")
                else:
                    result.embedded_count += 1
                    result.chunk_count += outcome
                if progress is not None:
                    progress(done, total, record.evidence_id)

        logger.info(
            "Embedded %d/%d records (%d chunks, %d errors)",
            result.embedded_count, total, result.chunk_count, len(result.errors),
        )
        return result

    async def embed_query(self, text: str) -> list[float]:
        return await self.embedder.embed(text)

    async def index_stats(self) -> IndexStats:
        return await self.index.stats()
