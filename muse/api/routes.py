"""
API Routes

REST endpoints over the evidence pipeline:
- Single-edge and batch evidence matching
- External paper search (edge or free text)
- Logic model generation
- Embedding sync and index stats

Services are module-level singletons created lazily on first use and
injected with ``Depends`` so they can be overridden.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from muse.agent.llm_client import LLMClient
from muse.config import get_pipeline_config, get_settings
from muse.corpus.provider import CorpusProvider, FileCorpusProvider
from muse.external.search import ExternalReferenceSearch
from muse.haystack_svc.embedder import Embedder, create_embedder
from muse.haystack_svc.service import EvidenceIndexingService
from muse.haystack_svc.vector_index import VectorIndex, create_vector_index
from muse.models.evidence import CamelModel, EdgeQuery, EvidenceMatch
from muse.models.papers import ExternalPaper
from muse.pipeline.generator import LLMStructureGenerator, StructureGenerationError
from muse.pipeline.workflow import GenerationPipeline
from muse.retrieval.batch import BatchMatchEvaluator
from muse.retrieval.hybrid import HybridRetrievalEngine
from muse.retrieval.validator import EvidenceValidator

logger = logging.getLogger(__name__)

router = APIRouter()

# Global service instances (initialized lazily)
_llm: Optional[LLMClient] = None
_corpus: Optional[CorpusProvider] = None
_embedder: Optional[Embedder] = None
_vector_index: Optional[VectorIndex] = None
_indexing_service: Optional[EvidenceIndexingService] = None
_hybrid_engine: Optional[HybridRetrievalEngine] = None
_batch_evaluator: Optional[BatchMatchEvaluator] = None
_external_search: Optional[ExternalReferenceSearch] = None
_pipeline: Optional[GenerationPipeline] = None


async def get_llm() -> LLMClient:
    """Get or create the shared language model client."""
    global _llm
    if _llm is None:
        _llm = LLMClient()
        await _llm.initialize()
    return _llm


def get_corpus() -> CorpusProvider:
    """Get or create the evidence corpus."""
    global _corpus
    if _corpus is None:
        settings = get_settings()
        _corpus = FileCorpusProvider(settings.evidence_dir, settings.deployments_dir)
    return _corpus


def get_embedder() -> Embedder:
    global _embedder
    if _embedder is None:
        _embedder = create_embedder()
    return _embedder


def get_vector_index() -> VectorIndex:
    global _vector_index
    if _vector_index is None:
        _vector_index = create_vector_index()
    return _vector_index


def get_indexing_service() -> EvidenceIndexingService:
    """Get or create the embedding sync service."""
    global _indexing_service
    if _indexing_service is None:
        _indexing_service = EvidenceIndexingService(
            corpus=get_corpus(),
            embedder=get_embedder(),
            index=get_vector_index(),
        )
    return _indexing_service


async def get_hybrid_engine() -> HybridRetrievalEngine:
    """Get or create the single-edge retrieval engine."""
    global _hybrid_engine
    if _hybrid_engine is None:
        _hybrid_engine = HybridRetrievalEngine(
            corpus=get_corpus(),
            embedder=get_embedder(),
            index=get_vector_index(),
            validator=EvidenceValidator(await get_llm()),
        )
    return _hybrid_engine


async def get_batch_evaluator() -> BatchMatchEvaluator:
    """Get or create the batch match evaluator."""
    global _batch_evaluator
    if _batch_evaluator is None:
        _batch_evaluator = BatchMatchEvaluator(await get_llm(), get_corpus())
    return _batch_evaluator


async def get_external_search() -> ExternalReferenceSearch:
    """Get or create the external paper search."""
    global _external_search
    if _external_search is None:
        _external_search = ExternalReferenceSearch(keyword_model=await get_llm())
    return _external_search


async def get_pipeline() -> GenerationPipeline:
    """Get or create the generation pipeline."""
    global _pipeline
    if _pipeline is None:
        config = get_pipeline_config()
        structure_llm = LLMClient(model=config.structure_model)
        await structure_llm.initialize()
        _pipeline = GenerationPipeline(
            generator=LLMStructureGenerator(structure_llm),
            batch=await get_batch_evaluator(),
            hybrid=await get_hybrid_engine(),
            config=config,
        )
    return _pipeline


async def close_services() -> None:
    """Release connections held by the lazily created services."""
    if _external_search is not None:
        disconnect = getattr(_external_search.cache, "disconnect", None)
        if disconnect is not None:
            await disconnect()


# ===== Request/Response Models =====

class EdgeEvidenceRequest(CamelModel):
    """Request evidence for one causal link."""
    from_text: str = Field(..., description="Text of the cause card")
    to_text: str = Field(..., description="Text of the effect card")


class EdgeEvidenceResponse(BaseModel):
    matches: list[EvidenceMatch]


class BatchEvidenceRequest(CamelModel):
    """Request evidence for many causal links in one model call."""
    edges: list[EdgeQuery]
    min_score: Optional[int] = Field(default=None, ge=0, le=100)
    max_matches_per_edge: Optional[int] = Field(default=None, ge=1, le=20)


class BatchEvidenceResponse(BaseModel):
    results: dict[str, list[EvidenceMatch]]


class ExternalPapersRequest(CamelModel):
    """Either an edge (fromText/toText) or a free-text query."""
    from_text: Optional[str] = None
    to_text: Optional[str] = None
    query: Optional[str] = None
    max_results: Optional[int] = Field(default=None, ge=1, le=50)

    @model_validator(mode="after")
    def _edge_or_query(self) -> "ExternalPapersRequest":
        if not self.query and not (self.from_text and self.to_text):
            raise ValueError("Provide either query or both fromText and toText")
        return self


class ExternalPapersResponse(BaseModel):
    papers: list[ExternalPaper]


class GenerateRequest(BaseModel):
    """Request a logic model for an intent."""
    intent: str = Field(..., min_length=1, description="What the programme should achieve")


class SyncResponse(BaseModel):
    embedded_count: int
    chunk_count: int
    errors: list[str]
    ok: bool


class IndexStatsResponse(BaseModel):
    count: int
    exists: bool


# ===== Evidence Endpoints =====

@router.post("/evidence/edge", response_model=EdgeEvidenceResponse)
async def find_evidence_for_edge(
    request: EdgeEvidenceRequest,
    engine: HybridRetrievalEngine = Depends(get_hybrid_engine),
):
    """Validated evidence for one edge, best match first."""
    matches = await engine.find_evidence_for_edge(request.from_text, request.to_text)
    return EdgeEvidenceResponse(matches=matches)


@router.post("/evidence/batch", response_model=BatchEvidenceResponse)
async def find_evidence_for_edges(
    request: BatchEvidenceRequest,
    evaluator: BatchMatchEvaluator = Depends(get_batch_evaluator),
):
    """Evidence for every edge in one model call. Every arrow id is returned."""
    results = await evaluator.find_evidence_for_all_edges(
        request.edges,
        min_score=request.min_score,
        max_matches_per_edge=request.max_matches_per_edge,
    )
    return BatchEvidenceResponse(results=results)


# ===== External Search =====

@router.post("/external/papers", response_model=ExternalPapersResponse)
async def search_external_papers(
    request: ExternalPapersRequest,
    search: ExternalReferenceSearch = Depends(get_external_search),
):
    """Academic papers for an edge or a free-text query."""
    if request.query:
        papers = await search.search_free_text(request.query, request.max_results)
    else:
        papers = await search.search_external_papers(request.from_text, request.to_text)
        if request.max_results:
            papers = papers[:request.max_results]
    return ExternalPapersResponse(papers=papers)


# ===== Generation =====

@router.post("/generate")
async def generate_logic_model(
    request: GenerateRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """
    Generate a logic model for the intent and attach evidence to its arrows.

    Returns the canvas graph with camelCase keys.
    """
    try:
        graph = await pipeline.run(request.intent)
    except StructureGenerationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    return graph.model_dump(mode="json", by_alias=True, exclude_none=True)


# ===== Index Management =====

@router.post("/sync-embeddings", response_model=SyncResponse)
async def sync_embeddings(
    clear: bool = Query(default=False, description="Drop the index before re-embedding"),
    service: EvidenceIndexingService = Depends(get_indexing_service),
):
    """Re-embed the whole corpus. Per-record failures are listed in ``errors``."""
    try:
        result = await service.embed_all(clear_first=clear)
    except Exception as exc:
        logger.error("Embedding sync failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Embedding sync failed: {exc}",
        )
    return SyncResponse(
        embedded_count=result.embedded_count,
        chunk_count=result.chunk_count,
        errors=result.errors,
        ok=result.ok,
    )


@router.get("/index/stats", response_model=IndexStatsResponse)
async def index_stats(service: EvidenceIndexingService = Depends(get_indexing_service)):
    """Chunk count of the vector index and whether it exists."""
    stats = await service.index_stats()
    return IndexStatsResponse(count=stats.count, exists=stats.exists)
