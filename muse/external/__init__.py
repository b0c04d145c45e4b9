"""
External Reference Search

Academic paper search outside the curated corpus.
"""

from muse.external.cache import (
    InMemorySearchCache,
    RedisSearchCache,
    SearchCache,
    create_search_cache,
    normalize_cache_key,
)
from muse.external.providers import (
    CrossrefProvider,
    OpenAlexProvider,
    PaperProvider,
    SemanticScholarProvider,
    default_providers,
)
from muse.external.search import (
    ExternalReferenceSearch,
    build_search_query,
    dedupe_papers,
)

__all__ = [
    "InMemorySearchCache",
    "RedisSearchCache",
    "SearchCache",
    "create_search_cache",
    "normalize_cache_key",
    "CrossrefProvider",
    "OpenAlexProvider",
    "PaperProvider",
    "SemanticScholarProvider",
    "default_providers",
    "ExternalReferenceSearch",
    "build_search_query",
    "dedupe_papers",
]
