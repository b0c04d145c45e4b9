"""
Generation Pipeline

Three stages per run:

1. **Structure** - intent → cards + arrows via a StructureGenerator
   (one strict retry on a known format mistake; any other failure is
   fatal).
2. **Evidence** - every arrow whose cards resolve is searched
   concurrently, either in batch groups or edge by edge. A failing
   group or edge yields no matches for those arrows only.
3. **Merge** - matches are attached to their arrows; the graph is
   otherwise returned as generated.
"""

import asyncio
import logging
import time
from typing import Optional

from muse.config import PipelineConfig, get_pipeline_config
from muse.models.canvas import Arrow, CanvasGraph
from muse.models.enums import SearchMode
from muse.models.evidence import EdgeQuery, EvidenceMatch
from muse.pipeline.generator import (
    PipelineError,
    StructureFormatError,
    StructureGenerationError,
    StructureGenerator,
)
from muse.retrieval.batch import BatchMatchEvaluator
from muse.retrieval.hybrid import HybridRetrievalEngine

logger = logging.getLogger(__name__)

STRUCTURE_FAILURE_MESSAGE = (
    "Failed to generate logic model. The generator did not return valid canvas data."
)


def edges_for_graph(graph: CanvasGraph) -> list[EdgeQuery]:
    """Edge queries for arrows whose endpoint cards both exist."""
    cards = graph.card_index()
    edges = []
    for arrow in graph.arrows:
        source = cards.get(arrow.from_card_id)
        target = cards.get(arrow.to_card_id)
        if source is None or target is None:
            logger.warning(
                "Arrow %s missing cards (from=%s, to=%s)",
                arrow.id, source is not None, target is not None,
            )
            continue
        edges.append(EdgeQuery(arrow_id=arrow.id, from_text=source.text, to_text=target.text))
    return edges


def merge_evidence(
    graph: CanvasGraph,
    evidence_by_arrow: dict[str, list[EvidenceMatch]],
) -> CanvasGraph:
    """Attach matches to arrows, keeping arrow order and every other field."""
    arrows: list[Arrow] = []
    for arrow in graph.arrows:
        matches = evidence_by_arrow.get(arrow.id) or []
        if matches:
            arrow = arrow.model_copy(update={
                "evidence_ids": [m.evidence_id for m in matches],
                "evidence_metadata": list(matches),
            })
        arrows.append(arrow)
    return graph.model_copy(update={"arrows": arrows})


class GenerationPipeline:
    """Intent in, evidence-annotated logic model out."""

    def __init__(
        self,
        generator: StructureGenerator,
        batch: Optional[BatchMatchEvaluator] = None,
        hybrid: Optional[HybridRetrievalEngine] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.generator = generator
        self.batch = batch
        self.hybrid = hybrid
        self.config = config or get_pipeline_config()

        mode = SearchMode(self.config.search_mode)
        if mode is SearchMode.BATCH and batch is None:
            raise ValueError("batch search mode needs a BatchMatchEvaluator")
        if mode is SearchMode.PER_EDGE and hybrid is None:
            raise ValueError("per_edge search mode needs a HybridRetrievalEngine")
        self.mode = mode

    async def run(self, intent: str) -> CanvasGraph:
        """
        Run all three stages.

        Raises:
            StructureGenerationError: stage 1 produced nothing usable.
        """
        start = time.monotonic()
        graph = await self.generate_structure(intent)
        structure_ms = (time.monotonic() - start) * 1000

        search_start = time.monotonic()
        evidence = await self.search_evidence(graph)
        search_ms = (time.monotonic() - search_start) * 1000

        enriched = merge_evidence(graph, evidence)
        logger.info(
            "Pipeline done: %d arrows, %d matches (structure %.0fms, evidence %.0fms, mode=%s)",
            len(enriched.arrows), sum(len(m) for m in evidence.values()),
            structure_ms, search_ms, self.mode.value,
        )
        return enriched

    async def generate_structure(self, intent: str) -> CanvasGraph:
        """Stage 1, with a single strict retry on format mistakes."""
        if not intent or not intent.strip():
            raise StructureGenerationError("Intent must not be empty")

        try:
            graph = await self._generate(intent)
        except StructureFormatError as exc:
            logger.warning("Structure format mistake (%s); retrying with strict rules", exc)
            try:
                graph = await self._generate(intent, strict=True)
            except StructureFormatError as retry_exc:
                raise StructureGenerationError(
                    f"{STRUCTURE_FAILURE_MESSAGE} ({retry_exc})"
                ) from retry_exc

        if graph is None or not graph.cards or not graph.arrows:
            logger.error(
                "Structure missing parts (cards=%s, arrows=%s)",
                bool(graph and graph.cards), bool(graph and graph.arrows),
            )
            raise StructureGenerationError(STRUCTURE_FAILURE_MESSAGE)
        return graph

    async def _generate(self, intent: str, strict: bool = False) -> CanvasGraph:
        """Call the generator; anything but a typed pipeline error becomes a structure failure."""
        try:
            return await self.generator.generate(intent, strict=strict)
        except PipelineError:
            raise
        except Exception as exc:
            logger.error("Structure generator failed: %s", exc)
            raise StructureGenerationError(f"{STRUCTURE_FAILURE_MESSAGE} ({exc})") from exc

    async def search_evidence(self, graph: CanvasGraph) -> dict[str, list[EvidenceMatch]]:
        """Stage 2. Every arrow id is a key in the result."""
        evidence: dict[str, list[EvidenceMatch]] = {arrow.id: [] for arrow in graph.arrows}
        edges = edges_for_graph(graph)
        if not edges:
            return evidence

        if self.mode is SearchMode.BATCH:
            evidence.update(await self._search_batched(edges))
        else:
            evidence.update(await self._search_per_edge(edges))
        return evidence

    async def _search_batched(self, edges: list[EdgeQuery]) -> dict[str, list[EvidenceMatch]]:
        size = self.config.batch_edge_group_size
        groups = [edges[i:i + size] for i in range(0, len(edges), size)]
        outcomes = await asyncio.gather(
            *(self.batch.find_evidence_for_all_edges(group) for group in groups),
            return_exceptions=True,
        )

        results: dict[str, list[EvidenceMatch]] = {}
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Batch group of %d edges failed: %s", len(group), outcome)
                continue
            for edge in group:
                results[edge.arrow_id] = outcome.get(edge.arrow_id, [])
        return results

    async def _search_per_edge(self, edges: list[EdgeQuery]) -> dict[str, list[EvidenceMatch]]:
        outcomes = await asyncio.gather(
            *(self.hybrid.find_evidence_for_edge(e.from_text, e.to_text) for e in edges),
            return_exceptions=True,
        )

        results: dict[str, list[EvidenceMatch]] = {}
        for edge, outcome in zip(edges, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Evidence search for arrow %s failed: %s", edge.arrow_id, outcome)
                continue
            results[edge.arrow_id] = outcome
        return results
