"""
Generation Pipeline

Intent → logic model skeleton → evidence search → enriched graph.
"""

from muse.pipeline.generator import (
    LLMStructureGenerator,
    LogicModelDraft,
    PipelineError,
    StructureFormatError,
    StructureGenerationError,
    StructureGenerator,
    draft_to_canvas,
)
from muse.pipeline.workflow import (
    GenerationPipeline,
    edges_for_graph,
    merge_evidence,
)

__all__ = [
    "LLMStructureGenerator",
    "LogicModelDraft",
    "PipelineError",
    "StructureFormatError",
    "StructureGenerationError",
    "StructureGenerator",
    "draft_to_canvas",
    "GenerationPipeline",
    "edges_for_graph",
    "merge_evidence",
]
