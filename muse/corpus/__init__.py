"""Evidence corpus access."""

from muse.corpus.provider import (
    CorpusProvider,
    FileCorpusProvider,
    InMemoryCorpusProvider,
    list_with_results,
    split_frontmatter,
)

__all__ = [
    "CorpusProvider",
    "FileCorpusProvider",
    "InMemoryCorpusProvider",
    "list_with_results",
    "split_frontmatter",
]
