"""Evidence models for the curated corpus and edge-level matches."""

from typing import Any, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from muse.models.enums import EffectType


# Default quality cut-off on the Maryland Scientific Method Scale (1-5)
EVIDENCE_QUALITY_THRESHOLD = 3


def clamp_score(value: Any) -> int:
    """Coerce a model-reported score into the 0..100 range."""
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


class CamelModel(BaseModel):
    """Base for models that cross the canvas boundary in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResultTuple(BaseModel):
    """One intervention → outcome finding reported by a study."""

    model_config = ConfigDict(frozen=True)

    intervention: str = Field(..., description="What was done")
    outcome_variable: str = Field(..., description="What was measured")
    effect: EffectType = Field(
        default=EffectType.UNCLEAR,
        validation_alias=AliasChoices("effect", "outcome"),
        description="Direction of the observed effect",
    )

    @field_validator("effect", mode="before")
    @classmethod
    def _coerce_effect(cls, v: Any) -> EffectType:
        return EffectType.coerce(v)


class Citation(BaseModel):
    """A source backing an evidence record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    src: Optional[str] = None
    type: Optional[str] = None


class EvidenceRecord(BaseModel):
    """
    A curated research finding.

    Records come from the evidence corpus frontmatter. Only ``results``
    take part in edge matching: a record without result tuples is never
    a candidate.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    evidence_id: str = Field(..., min_length=1)
    title: str = ""
    author: str = ""
    date: str = ""
    version: Optional[str] = None
    strength: Optional[int] = Field(
        default=None,
        ge=0,
        le=5,
        description="Maryland Scientific Method Scale level",
    )
    methodologies: Union[str, list[str], None] = None
    tags: list[str] = Field(default_factory=list)
    datasets: list[str] = Field(default_factory=list)
    results: list[ResultTuple] = Field(default_factory=list)
    citations: list[Citation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("citations", "citation"),
    )
    attestation_uid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("attestation_uid", "attestationUID"),
    )
    timestamp: Optional[str] = None

    @field_validator("evidence_id", "title", "author", "date", "version", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        # YAML turns bare dates and numeric ids into non-strings
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("strength", mode="before")
    @classmethod
    def _parse_strength(cls, v: Any) -> Optional[int]:
        if v is None or v == "":
            return None
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return None

    @field_validator("tags", "datasets", "results", "citations", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @computed_field
    @property
    def strength_value(self) -> int:
        """Strength as an int; absent strength counts as 0."""
        return self.strength if self.strength is not None else 0

    @property
    def has_results(self) -> bool:
        return len(self.results) > 0

    @property
    def methodology_text(self) -> str:
        if isinstance(self.methodologies, list):
            return ", ".join(self.methodologies)
        return self.methodologies or ""


class EvidenceChunk(BaseModel):
    """A retrievable slice of one record's canonical text."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: list[float] = Field(default_factory=list)
    text: str
    evidence_id: str
    chunk_index: int = Field(..., ge=0)
    title: str = ""

    @staticmethod
    def make_id(evidence_id: str, index: int) -> str:
        return f"{evidence_id}-chunk-{index}"


class EdgeQuery(CamelModel):
    """A causal link to find evidence for."""

    arrow_id: str
    from_text: str = ""
    to_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.from_text.strip() or not self.to_text.strip()


class EvidenceMatch(CamelModel):
    """
    The attachment of one evidence record to one edge.

    Serialises with camelCase keys (``evidenceId``, ``hasWarning``...)
    because it is stored on canvas arrows as-is.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    evidence_id: str
    score: int = Field(..., ge=0, le=100)
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    reasoning: str = ""
    strength: Optional[str] = None
    has_warning: bool = False
    title: Optional[str] = None
    intervention_text: Optional[str] = None
    outcome_text: Optional[str] = None

    @classmethod
    def from_record(
        cls,
        record: EvidenceRecord,
        *,
        score: Any,
        reasoning: str = "",
        confidence: Any = None,
        intervention_text: Optional[str] = None,
        outcome_text: Optional[str] = None,
        quality_threshold: int = EVIDENCE_QUALITY_THRESHOLD,
    ) -> "EvidenceMatch":
        """Build a match whose strength, title and warning come from *record*."""
        return cls(
            evidence_id=record.evidence_id,
            score=clamp_score(score),
            confidence=None if confidence is None else clamp_score(confidence),
            reasoning=reasoning or "",
            strength=None if record.strength is None else str(record.strength),
            has_warning=record.strength_value < quality_threshold,
            title=record.title or None,
            intervention_text=intervention_text,
            outcome_text=outcome_text,
        )


def sort_matches(matches: list[EvidenceMatch]) -> list[EvidenceMatch]:
    """Order matches by descending score; ties keep their input order."""
    return sorted(matches, key=lambda m: m.score, reverse=True)
