"""Canvas graph models: cards, arrows and the logic model they form."""

from typing import Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from muse.models.evidence import CamelModel, EvidenceMatch


_PASSTHROUGH = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, extra="allow",
)


class Card(CamelModel):
    """A node of the logic model. Layout keys (x, y, color...) pass through."""

    model_config = _PASSTHROUGH

    id: str
    title: str = ""
    description: Optional[str] = None
    content: Optional[str] = None
    type: Optional[str] = None

    @property
    def text(self) -> str:
        """Text used to describe this card in an evidence query."""
        if self.title and self.description:
            return f"{self.title}. {self.description}"
        return self.title or self.content or ""


class Arrow(CamelModel):
    """A directed causal link between two cards."""

    model_config = _PASSTHROUGH

    id: str
    from_card_id: str
    to_card_id: str
    evidence_ids: Optional[list[str]] = None
    evidence_metadata: Optional[list[EvidenceMatch]] = None


class CanvasGraph(CamelModel):
    """
    The causal-graph skeleton plus whatever the generator attached to it.

    Evidence search only annotates arrows; cards and extra fields
    (id, title, cardMetrics, metadata...) are returned untouched.
    """

    model_config = _PASSTHROUGH

    cards: list[Card] = Field(default_factory=list)
    arrows: list[Arrow] = Field(default_factory=list)

    def card_index(self) -> dict[str, Card]:
        return {card.id: card for card in self.cards}
