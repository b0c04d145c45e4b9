"""
Vector Index

Nearest-neighbour storage for evidence chunks, backed by a Haystack
document store:
- InMemoryVectorIndex: InMemoryDocumentStore, single process
- QdrantVectorIndex: QdrantDocumentStore, existence/count/drop over the
  Qdrant REST API

Scores are normalised so thresholds mean the same thing on every
backend: cosine similarity s is turned into the Euclidean distance
between unit vectors, d = sqrt(2 - 2s), and reported as 1 / (1 + d).
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from haystack import Document
from haystack.components.retrievers.in_memory import InMemoryEmbeddingRetriever
from haystack.document_stores.in_memory import InMemoryDocumentStore
from haystack.document_stores.types import DuplicatePolicy

from muse.config import IndexingConfig, Settings, get_indexing_config, get_settings
from muse.models.evidence import EvidenceChunk

logger = logging.getLogger(__name__)


class VectorIndexUnavailableError(RuntimeError):
    """The index has not been created (or was cleared) and cannot be queried."""


@dataclass
class IndexStats:
    """Row count plus whether the index exists at all."""
    count: int
    exists: bool


@dataclass
class ScoredChunk:
    """A chunk returned by a similarity query."""
    chunk: EvidenceChunk
    score: float


def similarity_to_score(cosine: float) -> float:
    """Map cosine similarity in [-1, 1] to ``1 / (1 + L2 distance)``."""
    distance = math.sqrt(max(0.0, 2.0 - 2.0 * cosine))
    return 1.0 / (1.0 + distance)


def _chunk_to_document(chunk: EvidenceChunk) -> Document:
    return Document(
        id=chunk.chunk_id,
        content=chunk.text,
        embedding=list(chunk.vector),
        meta={
            "evidence_id": chunk.evidence_id,
            "chunk_index": chunk.chunk_index,
            "title": chunk.title,
        },
    )


def _document_to_chunk(doc: Document) -> EvidenceChunk:
    meta = doc.meta or {}
    return EvidenceChunk(
        chunk_id=doc.id,
        vector=list(doc.embedding or []),
        text=doc.content or "",
        evidence_id=str(meta.get("evidence_id", "")),
        chunk_index=int(meta.get("chunk_index", 0)),
        title=str(meta.get("title", "")),
    )


class VectorIndex:
    """
    Common upsert/query/clear/stats behaviour over a Haystack store.

    Subclasses provide the store, its retriever and how existence is
    checked. Upserts are serialised; queries run concurrently.
    """

    def __init__(self):
        self._store: Any = None
        self._write_lock = asyncio.Lock()

    # ----- backend hooks -----

    def _create_store(self) -> Any:
        raise NotImplementedError

    def _make_retriever(self, store: Any) -> Any:
        raise NotImplementedError

    async def stats(self) -> IndexStats:
        raise NotImplementedError

    async def clear(self) -> None:
        raise NotImplementedError

    # ----- operations -----

    async def upsert(self, chunks: list[EvidenceChunk]) -> int:
        """Insert or overwrite chunks by id. Creates the index on first use."""
        if not chunks:
            return 0
        documents = [_chunk_to_document(c) for c in chunks]
        async with self._write_lock:
            if self._store is None:
                self._store = await asyncio.to_thread(self._create_store)
            written = await asyncio.to_thread(
                self._store.write_documents,
                documents,
                DuplicatePolicy.OVERWRITE,
            )
        return written if isinstance(written, int) else len(documents)

    async def query(
        self,
        vector: list[float],
        limit: int,
        score_threshold: float = 0.0,
    ) -> list[ScoredChunk]:
        """
        Nearest chunks to *vector*.

        Returns at most *limit* chunks with ``score >= score_threshold``,
        highest score first.

        Raises:
            VectorIndexUnavailableError: if the index does not exist.
        """
        stats = await self.stats()
        if not stats.exists or self._store is None:
            raise VectorIndexUnavailableError("vector index has not been created")

        retriever = self._make_retriever(self._store)
        result = await asyncio.to_thread(
            retriever.run, query_embedding=list(vector), top_k=limit,
        )

        scored = [
            ScoredChunk(
                chunk=_document_to_chunk(doc),
                score=similarity_to_score(doc.score if doc.score is not None else -1.0),
            )
            for doc in result["documents"]
        ]
        scored = [s for s in scored if s.score >= score_threshold]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]


class InMemoryVectorIndex(VectorIndex):
    """Process-local index; cleared means absent until the next upsert."""

    def _create_store(self) -> InMemoryDocumentStore:
        return InMemoryDocumentStore(embedding_similarity_function="cosine")

    def _make_retriever(self, store: InMemoryDocumentStore) -> InMemoryEmbeddingRetriever:
        return InMemoryEmbeddingRetriever(document_store=store, scale_score=False)

    async def stats(self) -> IndexStats:
        if self._store is None:
            return IndexStats(count=0, exists=False)
        return IndexStats(count=self._store.count_documents(), exists=True)

    async def clear(self) -> None:
        async with self._write_lock:
            if self._store is not None:
                ids = [doc.id for doc in self._store.filter_documents()]
                if ids:
                    self._store.delete_documents(ids)
            self._store = None


class QdrantVectorIndex(VectorIndex):
    """Qdrant collection accessed through qdrant-haystack."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        collection_name: str = "muse_evidence_chunks",
        embedding_dim: int = 384,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        settings = get_settings()
        self.host = host or settings.qdrant_host
        self.port = port or settings.qdrant_port
        self.collection_name = collection_name
        self.embedding_dim = embedding_dim
        self._transport = transport

    @property
    def _collection_url(self) -> str:
        return f"http://{self.host}:{self.port}/collections/{self.collection_name}"

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=30, transport=self._transport)

    def _create_store(self) -> Any:
        from haystack_integrations.document_stores.qdrant import QdrantDocumentStore

        return QdrantDocumentStore(
            host=self.host,
            port=self.port,
            index=self.collection_name,
            embedding_dim=self.embedding_dim,
            similarity="cosine",
            recreate_index=False,
            wait_result_from_api=True,
        )

    def _make_retriever(self, store: Any) -> Any:
        from haystack_integrations.components.retrievers.qdrant import QdrantEmbeddingRetriever

        return QdrantEmbeddingRetriever(document_store=store, scale_score=False)

    async def stats(self) -> IndexStats:
        async with self._http() as client:
            resp = await client.get(self._collection_url)
            if resp.status_code == 404:
                return IndexStats(count=0, exists=False)
            resp.raise_for_status()

            count_resp = await client.post(
                f"{self._collection_url}/points/count", json={"exact": True},
            )
            count_resp.raise_for_status()
            count = count_resp.json().get("result", {}).get("count", 0)

        if self._store is None:
            # Collection created by another process; attach to it
            self._store = await asyncio.to_thread(self._create_store)
        return IndexStats(count=int(count), exists=True)

    async def clear(self) -> None:
        """Drop the collection via the REST API; the next upsert recreates it."""
        async with self._write_lock:
            async with self._http() as client:
                resp = await client.delete(self._collection_url)
                if resp.status_code != 404:
                    resp.raise_for_status()
            self._store = None
            logger.info("Dropped Qdrant collection %s", self.collection_name)


def create_vector_index(
    config: Optional[IndexingConfig] = None,
    settings: Optional[Settings] = None,
) -> VectorIndex:
    """Build the index selected by ``MUSE_INDEX_VECTOR_BACKEND``."""
    config = config or get_indexing_config()
    if config.vector_backend == "memory":
        return InMemoryVectorIndex()
    settings = settings or get_settings()
    return QdrantVectorIndex(
        host=settings.qdrant_host,
        port=settings.qdrant_port,
        collection_name=config.collection_name,
        embedding_dim=config.vector_dim,
    )
