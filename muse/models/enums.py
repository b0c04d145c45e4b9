"""Enumeration types for the Muse evidence engine."""

from enum import Enum
from typing import Any


class EffectType(str, Enum):
    """Observed effect of an intervention on an outcome variable."""
    POSITIVE = "positive"
    NONE = "none"
    MIXED = "mixed"
    SIDE_EFFECT = "side-effect"
    UNCLEAR = "unclear"

    @classmethod
    def coerce(cls, value: Any) -> "EffectType":
        """Map loosely-typed corpus values onto an effect.

        Accepts the enum values, the numeric effect ids used in the
        evidence frontmatter (0 unclear, 1 positive, 2 none, 3 mixed,
        4 side effects) and the short symbols ``+ 0 +- !``.
        Anything else is ``UNCLEAR``.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNCLEAR
        key = str(value).strip().lower().replace("_", "-")
        return _EFFECT_ALIASES.get(key, cls.UNCLEAR)


_EFFECT_ALIASES: dict[str, EffectType] = {
    **{e.value: e for e in EffectType},
    "0": EffectType.UNCLEAR,
    "1": EffectType.POSITIVE,
    "2": EffectType.NONE,
    "3": EffectType.MIXED,
    "4": EffectType.SIDE_EFFECT,
    "+": EffectType.POSITIVE,
    "=": EffectType.NONE,
    "-": EffectType.NONE,
    "+-": EffectType.MIXED,
    "!": EffectType.SIDE_EFFECT,
    "side effect": EffectType.SIDE_EFFECT,
    "side-effects": EffectType.SIDE_EFFECT,
    "no effect": EffectType.NONE,
}


class PaperSource(str, Enum):
    """Academic search provider a paper came from."""
    SEMANTIC_SCHOLAR = "semantic_scholar"
    OPENALEX = "openalex"
    CROSSREF = "crossref"


class CardType(str, Enum):
    """Logic model stage a canvas card belongs to."""
    ACTIVITIES = "activities"
    OUTPUTS = "outputs"
    OUTCOMES_SHORT = "outcomesShort"
    OUTCOMES_INTERMEDIATE = "outcomesIntermediate"
    IMPACT = "impact"


class SearchMode(str, Enum):
    """How the pipeline attaches evidence to edges."""
    BATCH = "batch"
    PER_EDGE = "per_edge"
