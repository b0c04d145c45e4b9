"""
Test doubles for the network-bound collaborators.

- HashingEmbedder: bag-of-words vectors via feature hashing
- ScriptedLLM: canned replies, a reply handler, or a raised error
- overlap_judge: answers validation prompts by word overlap between the
  edge and the record's results
"""

import hashlib
import json
import math
import re
from typing import Callable, Optional

from muse.models.evidence import EvidenceRecord

_WORD_RE = re.compile(r"[a-z0-9]+")


def tokens(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 3}


class HashingEmbedder:
    """Feature-hashed word counts, L2 normalised."""

    def __init__(self, dim: int = 64):
        self.dim = dim
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        vec = [0.0] * self.dim
        for word in _WORD_RE.findall(text.lower()):
            slot = int(hashlib.sha256(word.encode()).hexdigest()[:8], 16) % self.dim
            vec[slot] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0:
            vec[0] = 1.0
            return vec
        return [v / norm for v in vec]


class ScriptedLLM:
    """A LanguageModel that records prompts and answers from a script."""

    def __init__(
        self,
        responses: Optional[list[str]] = None,
        handler: Optional[Callable[[str], str]] = None,
        error: Optional[Exception] = None,
    ):
        self.responses = list(responses or [])
        self.handler = handler
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.handler is not None:
            return self.handler(prompt)
        if self.responses:
            return self.responses.pop(0)
        return '{"results": {}}'


_SOURCE_RE = re.compile(r'Source \(Intervention/Activity\): "([^"]*)"')
_TARGET_RE = re.compile(r'Target \(Output/Outcome\): "([^"]*)"')
_RESULT_RE = re.compile(r'(?:Intervention|Outcome): "([^"]*)"')


def overlap_judge(prompt: str) -> str:
    """Validation reply scored by shared words between edge and results."""
    source = _SOURCE_RE.search(prompt)
    target = _TARGET_RE.search(prompt)
    edge_words = tokens(f"{source.group(1) if source else ''} {target.group(1) if target else ''}")
    result_words = tokens(" ".join(_RESULT_RE.findall(prompt)))
    overlap = len(edge_words & result_words)
    matched = overlap >= 2
    return json.dumps({
        "match": matched,
        "score": min(95, 50 + 10 * overlap) if matched else 10,
        "confidence": 80,
        "reasoning": f"{overlap} shared concepts",
    })


SPONSORS_EDGE = (
    "Fund maintainers through GitHub Sponsors",
    "Increased maintainer activity on open source projects",
)
CAT_EDGE = ("Post cat photos", "More cat photos shared")


def make_record(evidence_id: str, **fields) -> EvidenceRecord:
    return EvidenceRecord.model_validate({"evidence_id": evidence_id, **fields})

