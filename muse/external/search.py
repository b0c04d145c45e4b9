"""
External Reference Search Connector

Finds academic papers for an edge (or a free-text query) outside the
curated corpus. Providers are queried concurrently and isolated from
each other: one provider timing out or failing only removes its hits.
Results are de-duplicated by DOI (title when there is no DOI),
truncated, and cached.
"""

import asyncio
import logging
import textwrap
from typing import Optional

from muse.agent.llm_client import LanguageModel
from muse.config import ExternalSearchConfig, get_external_search_config
from muse.external.cache import SearchCache, create_search_cache
from muse.external.providers import PaperProvider, default_providers
from muse.models.papers import ExternalPaper
from muse.utils.text import leading_title, truncate_at_word_boundary

logger = logging.getLogger(__name__)

_KEYWORD_TEMPLATE = textwrap.dedent("""\
    Extract 3-5 English academic search keywords from this causal
    relationship in a logic model.
    Return ONLY the keywords separated by spaces, nothing else.

    From: {from_title}
    To: {to_title}""")


def build_search_query(from_text: str, to_text: str, max_chars: int = 100) -> str:
    """Deterministic edge query: both card titles, bounded in length."""
    query = f"{leading_title(from_text)} {leading_title(to_text)}".strip()
    return truncate_at_word_boundary(query, max_chars)


def dedupe_papers(papers: list[ExternalPaper]) -> list[ExternalPaper]:
    """Keep the first paper per DOI (or per title when DOI is missing)."""
    seen: set[str] = set()
    unique = []
    for paper in papers:
        key = paper.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(paper)
    return unique


class ExternalReferenceSearch:
    """Concurrent, cached paper search across providers."""

    def __init__(
        self,
        providers: Optional[list[PaperProvider]] = None,
        cache: Optional[SearchCache] = None,
        config: Optional[ExternalSearchConfig] = None,
        keyword_model: Optional[LanguageModel] = None,
    ):
        self.config = config or get_external_search_config()
        self.providers = providers if providers is not None else default_providers()
        self.cache = cache if cache is not None else create_search_cache(self.config)
        self.keyword_model = keyword_model if self.config.extract_keywords else None

    async def search_external_papers(self, from_text: str, to_text: str) -> list[ExternalPaper]:
        """
        Papers related to the edge ``from_text → to_text``.

        Returns at most ``max_papers`` papers; an empty list when search
        is disabled, the query is empty, or every provider failed.
        """
        if not self.config.enabled:
            return []

        stable_key = build_search_query(from_text or "", to_text or "", self.config.query_max_chars)
        if not stable_key:
            return []

        cached = await self._cache_get(stable_key)
        if cached is not None:
            logger.debug("Cache hit for edge search %r", stable_key)
            return cached[:self.config.max_papers]

        query = await self._keywords(from_text, to_text, fallback=stable_key)
        papers = await self._search(query, self.config.max_papers)
        if query != stable_key:
            await self._cache_set(stable_key, papers)
        return papers

    async def search_free_text(
        self,
        query: str,
        max_results: Optional[int] = None,
    ) -> list[ExternalPaper]:
        """Papers for a user-typed query (no keyword extraction)."""
        if not self.config.enabled:
            return []
        query = truncate_at_word_boundary(query or "", self.config.free_text_max_chars)
        if not query:
            return []
        return await self._search(query, max_results or self.config.max_papers)

    # ----- internals -----

    async def _search(self, query: str, max_results: int) -> list[ExternalPaper]:
        cached = await self._cache_get(query)
        if cached is not None:
            logger.debug("Cache hit for %r", query)
            return cached[:max_results]

        logger.info("Searching %d paper providers for %r", len(self.providers), query)
        per_provider = await asyncio.gather(
            *(self._search_provider(p, query) for p in self.providers)
        )
        merged = [paper for papers in per_provider for paper in papers]
        limited = dedupe_papers(merged)[:max_results]
        logger.info("External search found %d papers, returning %d", len(merged), len(limited))

        await self._cache_set(query, limited)
        return limited

    async def _search_provider(self, provider: PaperProvider, query: str) -> list[ExternalPaper]:
        try:
            return await asyncio.wait_for(
                provider.search(query, self.config.per_provider_results),
                timeout=self.config.provider_deadline,
            )
        except asyncio.TimeoutError:
            logger.warning("%s timed out for %r", provider.source.value, query)
        except Exception as exc:
            logger.warning("%s search failed for %r: %s", provider.source.value, query, exc)
        return []

    async def _keywords(self, from_text: str, to_text: str, fallback: str) -> str:
        if self.keyword_model is None:
            return fallback
        prompt = _KEYWORD_TEMPLATE.format(
            from_title=leading_title(from_text), to_title=leading_title(to_text),
        )
        try:
            keywords = (await self.keyword_model.complete(prompt)).strip()
        except Exception as exc:
            logger.warning("Keyword extraction failed, using card titles: %s", exc)
            return fallback
        keywords = " ".join(keywords.split())
        return truncate_at_word_boundary(keywords, self.config.query_max_chars) or fallback

    async def _cache_get(self, key: str) -> Optional[list[ExternalPaper]]:
        try:
            return await self.cache.get(key)
        except Exception as exc:
            logger.warning("Search cache read failed: %s", exc)
            return None

    async def _cache_set(self, key: str, papers: list[ExternalPaper]) -> None:
        try:
            await self.cache.set(key, papers)
        except Exception as exc:
            logger.warning("Search cache write failed: %s", exc)
