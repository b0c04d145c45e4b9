"""
Text Truncation Utilities

Provides:
- Word-boundary truncation for search queries sent to paper APIs.
- Abstract truncation for external paper summaries.
- Title extraction from "title. description" card text.

Components that need to bound free text should use these helpers
instead of raw ``[:N]`` slicing.
"""

from __future__ import annotations

from typing import Optional


def truncate_at_word_boundary(text: str, max_chars: int) -> str:
    """Cut *text* to at most *max_chars*, preferring the last space.

    Examples
    --------
    >>> truncate_at_word_boundary("open source funding", 12)
    'open source'
    >>> truncate_at_word_boundary("short", 100)
    'short'
    """
    text = text.strip()
    if len(text) <= max_chars:
        return text
    cut = text.rfind(" ", 0, max_chars + 1)
    if cut <= 0:
        return text[:max_chars]
    return text[:cut].rstrip()


def truncate_abstract(
    abstract: Optional[str],
    max_chars: int = 500,
    *,
    suffix: str = "...",
) -> Optional[str]:
    """Cut an abstract to *max_chars* at a word boundary and mark the cut with *suffix*.

    Empty abstracts become ``None`` so they serialise as absent.
    """
    if not abstract:
        return None
    abstract = abstract.strip()
    if len(abstract) <= max_chars:
        return abstract
    return truncate_at_word_boundary(abstract, max_chars) + suffix


def leading_title(text: str) -> str:
    """The part of ``"title. description"`` before the first period."""
    return text.split(".", 1)[0].strip()
