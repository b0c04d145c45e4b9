"""
Model Output Parsing

Language model replies are JSON wrapped in varying amounts of prose.
Parsing runs an ordered list of strategies and reports which one
succeeded:

1. FENCED   - the body of a ```json fenced block
2. RAW      - the whole reply
3. EMBEDDED - the outermost {...} found in the reply

Each candidate gets one repair pass (trailing commas, bare keys) before
the next strategy is tried. A reply no strategy can read is malformed;
callers treat that as "no match", never as an error.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from muse.models.evidence import clamp_score

logger = logging.getLogger(__name__)

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_ANY_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class ParseStrategy(str, Enum):
    """Which extraction step produced the parsed value."""
    FENCED = "fenced"
    RAW = "raw"
    EMBEDDED = "embedded"


@dataclass
class ParseOutcome:
    """Parsed JSON object plus the strategy that found it."""
    data: Optional[dict[str, Any]]
    strategy: Optional[ParseStrategy]

    @property
    def ok(self) -> bool:
        return self.data is not None


def _repair_json(text: str) -> str:
    """Attempt to repair malformed JSON."""
    text = re.sub(r",\s*}", "}", text)
    text = re.sub(r",\s*]", "]", text)
    text = re.sub(r"(\{|,)\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*:", r'\1"\2":', text)
    return text


def _loads_object(candidate: str) -> Optional[dict[str, Any]]:
    candidate = candidate.strip()
    if not candidate:
        return None
    for attempt in (candidate, _repair_json(candidate)):
        try:
            value = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def parse_with_fallbacks(text: str, required_key: Optional[str] = None) -> ParseOutcome:
    """
    Extract a JSON object from a model reply.

    Args:
        text: Raw model output
        required_key: If set, a parsed object must contain this key, and
            the embedded strategy looks for an object mentioning it

    Returns:
        ParseOutcome; ``data`` is None when every strategy failed
    """
    if not text:
        return ParseOutcome(None, None)

    if required_key:
        embedded_re = re.compile(r'\{[\s\S]*"' + re.escape(required_key) + r'"[\s\S]*\}')
    else:
        embedded_re = _ANY_OBJECT_RE

    candidates: list[tuple[ParseStrategy, str]] = []
    fenced = _FENCED_RE.search(text)
    if fenced:
        candidates.append((ParseStrategy.FENCED, fenced.group(1)))
    candidates.append((ParseStrategy.RAW, text))
    embedded = embedded_re.search(text)
    if embedded:
        candidates.append((ParseStrategy.EMBEDDED, embedded.group(0)))

    for strategy, candidate in candidates:
        data = _loads_object(candidate)
        if data is None:
            continue
        if required_key and required_key not in data:
            continue
        return ParseOutcome(data, strategy)

    return ParseOutcome(None, None)


# ----- Validation verdicts ----- #

@dataclass
class ValidationVerdict:
    """The model's judgement of one record against one edge."""
    match: bool
    score: int
    reasoning: str = ""
    confidence: Optional[int] = None
    intervention_text: Optional[str] = None
    outcome_text: Optional[str] = None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return False


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_validation_verdict(text: str) -> Optional[ValidationVerdict]:
    """Read ``{match, score, reasoning, ...}``; None if the reply is malformed."""
    outcome = parse_with_fallbacks(text, required_key="match")
    if not outcome.ok:
        logger.debug("Unparseable validation reply: %.200s", text)
        return None
    data = outcome.data
    if "score" not in data:
        return None
    confidence = data.get("confidence")
    return ValidationVerdict(
        match=_as_bool(data.get("match")),
        score=clamp_score(data.get("score")),
        reasoning=str(data.get("reasoning") or ""),
        confidence=None if confidence is None else clamp_score(confidence),
        intervention_text=_optional_text(data.get("interventionText")),
        outcome_text=_optional_text(data.get("outcomeText")),
    )


def parse_batch_results(text: str) -> Optional[dict[str, list[dict[str, Any]]]]:
    """Read ``{"results": {arrowId: [match, ...]}}``; None if malformed."""
    outcome = parse_with_fallbacks(text, required_key="results")
    if not outcome.ok:
        logger.warning("Could not parse batch evidence reply (%d chars)", len(text or ""))
        return None
    results = outcome.data.get("results")
    if not isinstance(results, dict):
        return None
    logger.debug("Parsed batch reply via %s strategy", outcome.strategy.value)
    return {
        str(arrow_id): [m for m in matches if isinstance(m, dict)]
        for arrow_id, matches in results.items()
        if isinstance(matches, list)
    }
