"""
Data Models

Core Pydantic models for the Muse evidence engine.
All modules import from here - no circular dependencies allowed.
"""

from muse.models.enums import (
    EffectType,
    PaperSource,
    CardType,
    SearchMode,
)
from muse.models.evidence import (
    EVIDENCE_QUALITY_THRESHOLD,
    Citation,
    EdgeQuery,
    EvidenceChunk,
    EvidenceMatch,
    EvidenceRecord,
    ResultTuple,
    clamp_score,
    sort_matches,
)
from muse.models.canvas import Arrow, CanvasGraph, Card
from muse.models.papers import ExternalPaper

__all__ = [
    # Enums
    "EffectType",
    "PaperSource",
    "CardType",
    "SearchMode",
    # Evidence
    "EVIDENCE_QUALITY_THRESHOLD",
    "Citation",
    "EdgeQuery",
    "EvidenceChunk",
    "EvidenceMatch",
    "EvidenceRecord",
    "ResultTuple",
    "clamp_score",
    "sort_matches",
    # Canvas
    "Arrow",
    "CanvasGraph",
    "Card",
    # Papers
    "ExternalPaper",
]
