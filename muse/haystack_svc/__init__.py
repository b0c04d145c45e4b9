"""
Haystack Service

Embedding, chunking and vector storage for the evidence corpus.
"""

from muse.haystack_svc.embedder import (
    Embedder,
    GeminiEmbedder,
    SentenceTransformersEmbedder,
    create_embedder,
)
from muse.haystack_svc.service import (
    EvidenceIndexingService,
    SyncResult,
    build_evidence_text,
)
from muse.haystack_svc.vector_index import (
    IndexStats,
    InMemoryVectorIndex,
    QdrantVectorIndex,
    ScoredChunk,
    VectorIndex,
    VectorIndexUnavailableError,
    create_vector_index,
    similarity_to_score,
)

__all__ = [
    "Embedder",
    "GeminiEmbedder",
    "SentenceTransformersEmbedder",
    "create_embedder",
    "EvidenceIndexingService",
    "SyncResult",
    "build_evidence_text",
    "IndexStats",
    "InMemoryVectorIndex",
    "QdrantVectorIndex",
    "ScoredChunk",
    "VectorIndex",
    "VectorIndexUnavailableError",
    "create_vector_index",
    "similarity_to_score",
]
