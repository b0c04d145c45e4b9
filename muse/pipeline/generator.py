"""
Structure Generator

Turns an intent ("create positive impact on X") into a logic model
skeleton: five stages of cards plus index-based causal connections
between them, laid out left to right.
"""

from __future__ import annotations

import logging
import textwrap
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

from muse.agent.llm_client import LanguageModel
from muse.models.canvas import Arrow, CanvasGraph, Card
from muse.models.enums import CardType
from muse.retrieval.parsing import parse_with_fallbacks

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base error for the generation pipeline."""


class StructureGenerationError(PipelineError):
    """The generator produced no usable cards/arrows. Fatal for the run."""


class StructureFormatError(PipelineError):
    """The generator's output broke a known format rule; worth one strict retry."""


@runtime_checkable
class StructureGenerator(Protocol):
    """Intent → causal-graph skeleton."""

    async def generate(self, intent: str, *, strict: bool = False) -> CanvasGraph:
        ...


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Generator output schema
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class StageItem(BaseModel):
    """One card as the model describes it."""

    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=200)
    metrics: list[dict[str, Any]] = Field(default_factory=list)


class ConnectionInput(BaseModel):
    """A causal link expressed as (stage, index) → (stage, index)."""

    fromCardIndex: int = Field(..., ge=0)
    fromCardType: CardType
    toCardIndex: int = Field(..., ge=0)
    toCardType: CardType
    reasoning: Optional[str] = None


class LogicModelDraft(BaseModel):
    """Full structured reply from the model."""

    title: str = ""
    description: Optional[str] = None
    activities: list[StageItem] = Field(default_factory=list)
    outputs: list[StageItem] = Field(default_factory=list)
    outcomesShort: list[StageItem] = Field(default_factory=list)
    outcomesIntermediate: list[StageItem] = Field(default_factory=list)
    impact: list[StageItem] = Field(default_factory=list)
    connections: list[ConnectionInput] = Field(default_factory=list)

    def stage(self, card_type: CardType) -> list[StageItem]:
        return getattr(self, card_type.value)


STAGE_ORDER = [
    CardType.ACTIVITIES,
    CardType.OUTPUTS,
    CardType.OUTCOMES_SHORT,
    CardType.OUTCOMES_INTERMEDIATE,
    CardType.IMPACT,
]

TYPE_COLOR_MAP = {
    CardType.ACTIVITIES: "#c7d2fe",
    CardType.OUTPUTS: "#d1fae5",
    CardType.OUTCOMES_SHORT: "#fef08a",
    CardType.OUTCOMES_INTERMEDIATE: "#fef08a",
    CardType.IMPACT: "#e9d5ff",
}

HORIZONTAL_SPACING = 400
VERTICAL_SPACING = 180
START_X = 50
BASE_Y = 350


_STRUCTURE_TEMPLATE = textwrap.dedent("""\
    You design logic models for social impact programmes.

    Create a logic model for: {intent}

    Return ONLY valid JSON with this structure:
    {{
      "title": "short title",
      "description": "one sentence",
      "activities": [{{"title": "...", "description": "...", "metrics": []}}],
      "outputs": [...],
      "outcomesShort": [...],
      "outcomesIntermediate": [...],
      "impact": [...],
      "connections": [
        {{"fromCardIndex": 0, "fromCardType": "activities",
          "toCardIndex": 0, "toCardType": "outputs",
          "reasoning": "why this is a plausible causal link"}}
      ]
    }}

    Use 1-3 cards per stage. Connect each card to at least one card in
    a later stage.""")

_STRICT_RULES = textwrap.dedent("""\

    STRICT FORMAT RULES (your previous answer broke them):
    - Card titles are 1-100 characters, descriptions at most 200.
    - fromCardType / toCardType are exactly one of: activities, outputs,
      outcomesShort, outcomesIntermediate, impact.
    - Card indices are 0-based and must exist in the named stage.
    - Output the JSON object only, no commentary.""")


def build_structure_prompt(intent: str, strict: bool = False) -> str:
    prompt = _STRUCTURE_TEMPLATE.format(intent=intent)
    return prompt + _STRICT_RULES if strict else prompt


def draft_to_canvas(draft: LogicModelDraft, intent: str) -> CanvasGraph:
    """Lay the draft out as cards and arrows.

    Raises:
        StructureFormatError: a connection points at a card that does not exist.
    """
    run_id = uuid.uuid4().hex[:12]
    cards: list[Card] = []
    card_metrics: dict[str, list[dict[str, Any]]] = {}
    ids: dict[tuple[CardType, int], str] = {}

    for column, card_type in enumerate(STAGE_ORDER):
        items = draft.stage(card_type)
        for row, item in enumerate(items):
            card_id = f"{card_type.value}-{run_id}-{row}"
            ids[(card_type, row)] = card_id
            offset = (row - (len(items) - 1) / 2) * VERTICAL_SPACING
            cards.append(Card(
                id=card_id,
                title=item.title,
                description=item.description,
                type=card_type.value,
                x=START_X + column * HORIZONTAL_SPACING,
                y=BASE_Y + offset,
                color=TYPE_COLOR_MAP[card_type],
            ))
            if item.metrics:
                card_metrics[card_id] = item.metrics

    arrows: list[Arrow] = []
    seen: set[tuple[str, str]] = set()
    for conn in draft.connections:
        source = ids.get((conn.fromCardType, conn.fromCardIndex))
        target = ids.get((conn.toCardType, conn.toCardIndex))
        if source is None or target is None:
            raise StructureFormatError(
                f"connection {conn.fromCardType.value}[{conn.fromCardIndex}] → "
                f"{conn.toCardType.value}[{conn.toCardIndex}] references a missing card"
            )
        if (source, target) in seen:
            continue
        seen.add((source, target))
        arrows.append(Arrow(id=f"arrow-{run_id}-{len(arrows)}", from_card_id=source, to_card_id=target))

    return CanvasGraph(
        cards=cards,
        arrows=arrows,
        id=f"canvas-{run_id}",
        title=draft.title or intent[:100],
        description=draft.description or f"Logic model for {intent}",
        cardMetrics=card_metrics,
        metadata={
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "version": "1.0.0",
            "author": "Muse logic model generator",
        },
    )


class LLMStructureGenerator:
    """Structure generation with a language model and a JSON stage schema."""

    def __init__(self, llm: LanguageModel):
        self.llm = llm

    async def generate(self, intent: str, *, strict: bool = False) -> CanvasGraph:
        """
        Ask the model for a logic model and build the canvas graph.

        Raises:
            StructureFormatError: unparseable JSON, schema violations or
                dangling connections
            StructureGenerationError: the model call itself failed
        """
        start = time.monotonic()
        try:
            reply = await self.llm.complete(build_structure_prompt(intent, strict))
        except Exception as exc:
            raise StructureGenerationError(f"Structure generation failed: {exc}") from exc

        outcome = parse_with_fallbacks(reply, required_key="connections")
        if not outcome.ok:
            raise StructureFormatError("generator reply was not a JSON logic model")
        try:
            draft = LogicModelDraft.model_validate(outcome.data)
        except ValidationError as exc:
            raise StructureFormatError(f"generator reply failed validation: {exc}") from exc

        graph = draft_to_canvas(draft, intent)
        logger.info(
            "Generated structure with %d cards, %d arrows in %.0fms (strict=%s)",
            len(graph.cards), len(graph.arrows), (time.monotonic() - start) * 1000, strict,
        )
        return graph
