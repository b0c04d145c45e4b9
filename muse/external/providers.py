"""
Paper Providers

HTTP clients for academic search APIs, each normalising its own
response shape into ``ExternalPaper``:
- Semantic Scholar Graph API (relevance search)
- OpenAlex works search
- Crossref works search

Transient failures (timeouts, 429, 5xx) are retried with backoff;
anything else propagates so the caller can isolate the provider.
"""

import asyncio
import logging
import re
from typing import Any, Optional

import httpx

from muse.agent.retry import BackoffPolicy, call_with_backoff
from muse.config import get_external_search_config, get_settings
from muse.models.enums import PaperSource
from muse.models.papers import ExternalPaper
from muse.utils.text import truncate_abstract

logger = logging.getLogger(__name__)

MIN_QUERY_CHARS = 3
ABSTRACT_MAX_CHARS = 500

_TAG_RE = re.compile(r"<[^>]+>")
_DOI_PREFIX_RE = re.compile(r"^https?://(dx\.)?doi\.org/", re.IGNORECASE)


def is_transient_http_error(exc: BaseException) -> bool:
    """Worth retrying: network trouble, rate limiting or a server error."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError))


def _clean_doi(doi: Optional[str]) -> Optional[str]:
    if not doi:
        return None
    return _DOI_PREFIX_RE.sub("", doi.strip()) or None


class PaperProvider:
    """
    Base class for a paper search API.

    Subclasses set ``source`` and implement ``_request`` (URL, params,
    headers) and ``_normalize`` (one raw item → paper or None).
    """

    source: PaperSource

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        policy: Optional[BackoffPolicy] = None,
    ):
        config = get_external_search_config()
        self.timeout = timeout or config.timeout
        self.policy = policy or BackoffPolicy(
            max_retries=config.max_retries,
            initial_delay=config.initial_delay,
            retry_if=is_transient_http_error,
        )
        self._client = client

    def _request(self, query: str, max_results: int) -> tuple[str, dict[str, Any], dict[str, str]]:
        raise NotImplementedError

    def _items(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _normalize(self, raw: dict[str, Any]) -> Optional[ExternalPaper]:
        raise NotImplementedError

    async def _get_json(self, url: str, params: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        if self._client is not None:
            resp = await self._client.get(url, params=params, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params, headers=headers)
        resp.raise_for_status()
        return resp.json()

    async def search(self, query: str, max_results: int) -> list[ExternalPaper]:
        """Papers matching *query*, in the provider's relevance order."""
        query = query.strip()
        if len(query) < MIN_QUERY_CHARS:
            logger.debug("Query too short for %s: %r", self.source.value, query)
            return []

        url, params, headers = self._request(query, max_results)
        payload = await call_with_backoff(
            lambda: self._get_json(url, params, headers),
            self.policy,
            description=f"{self.source.value} search",
        )

        papers = []
        for raw in self._items(payload):
            paper = self._normalize(raw)
            if paper is not None:
                papers.append(paper)
        logger.debug("%s returned %d papers for %r", self.source.value, len(papers), query)
        return papers[:max_results]


class SemanticScholarProvider(PaperProvider):
    """https://api.semanticscholar.org/graph/v1/paper/search"""

    source = PaperSource.SEMANTIC_SCHOLAR
    base_url = "https://api.semanticscholar.org/graph/v1/paper/search"
    fields = "title,authors,year,abstract,externalIds,url,citationCount"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key or get_settings().semantic_scholar_api_key

    def _request(self, query, max_results):
        params = {"query": query, "limit": min(max_results, 100), "fields": self.fields}
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        return self.base_url, params, headers

    def _items(self, payload):
        data = payload.get("data")
        return data if isinstance(data, list) else []

    def _normalize(self, raw):
        title = (raw.get("title") or "").strip()
        if not title:
            return None
        doi = _clean_doi((raw.get("externalIds") or {}).get("DOI"))
        return ExternalPaper(
            id=ExternalPaper.make_id(self.source, doi, title),
            title=title,
            authors=[a["name"] for a in raw.get("authors") or [] if a.get("name")],
            year=raw.get("year"),
            doi=doi,
            url=raw.get("url") or None,
            abstract=truncate_abstract(raw.get("abstract"), ABSTRACT_MAX_CHARS),
            source=self.source,
            citation_count=raw.get("citationCount"),
        )


def rebuild_inverted_abstract(index: Optional[dict[str, list[int]]]) -> Optional[str]:
    """OpenAlex ships abstracts as {word: [positions]}; put the words back in order."""
    if not index:
        return None
    positioned = [(pos, word) for word, positions in index.items() for pos in positions]
    positioned.sort()
    return " ".join(word for _, word in positioned)


class OpenAlexProvider(PaperProvider):
    """https://api.openalex.org/works"""

    source = PaperSource.OPENALEX
    base_url = "https://api.openalex.org/works"

    def __init__(self, mailto: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.mailto = mailto or get_settings().contact_email

    def _request(self, query, max_results):
        params: dict[str, Any] = {"search": query, "per-page": min(max_results, 200)}
        if self.mailto:
            params["mailto"] = self.mailto
        return self.base_url, params, {}

    def _items(self, payload):
        results = payload.get("results")
        return results if isinstance(results, list) else []

    def _normalize(self, raw):
        title = (raw.get("title") or raw.get("display_name") or "").strip()
        if not title:
            return None
        doi = _clean_doi(raw.get("doi"))
        location = raw.get("primary_location") or {}
        authors = [
            (a.get("author") or {}).get("display_name")
            for a in raw.get("authorships") or []
        ]
        return ExternalPaper(
            id=ExternalPaper.make_id(self.source, doi, title),
            title=title,
            authors=[a for a in authors if a],
            year=raw.get("publication_year"),
            doi=doi,
            url=location.get("landing_page_url") or raw.get("doi") or raw.get("id"),
            abstract=truncate_abstract(
                rebuild_inverted_abstract(raw.get("abstract_inverted_index")),
                ABSTRACT_MAX_CHARS,
            ),
            source=self.source,
            citation_count=raw.get("cited_by_count"),
        )


class CrossrefProvider(PaperProvider):
    """https://api.crossref.org/works"""

    source = PaperSource.CROSSREF
    base_url = "https://api.crossref.org/works"

    def __init__(self, mailto: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.mailto = mailto or get_settings().contact_email

    def _request(self, query, max_results):
        params: dict[str, Any] = {"query": query, "rows": min(max_results, 100)}
        if self.mailto:
            params["mailto"] = self.mailto
        return self.base_url, params, {}

    def _items(self, payload):
        items = (payload.get("message") or {}).get("items")
        return items if isinstance(items, list) else []

    @staticmethod
    def _year(raw: dict[str, Any]) -> Optional[int]:
        for key in ("published", "published-print", "published-online", "issued"):
            parts = (raw.get(key) or {}).get("date-parts") or []
            if parts and parts[0] and parts[0][0]:
                return int(parts[0][0])
        return None

    def _normalize(self, raw):
        titles = raw.get("title") or []
        title = (titles[0] if titles else "").strip()
        if not title:
            return None
        doi = _clean_doi(raw.get("DOI"))
        authors = [
            " ".join(p for p in (a.get("given"), a.get("family")) if p)
            for a in raw.get("author") or []
        ]
        abstract = raw.get("abstract")
        if abstract:
            abstract = " ".join(_TAG_RE.sub(" ", abstract).split())
        return ExternalPaper(
            id=ExternalPaper.make_id(self.source, doi, title),
            title=title,
            authors=[a for a in authors if a],
            year=self._year(raw),
            doi=doi,
            url=raw.get("URL") or None,
            abstract=truncate_abstract(abstract, ABSTRACT_MAX_CHARS),
            source=self.source,
            citation_count=raw.get("is-referenced-by-count"),
        )


def default_providers(client: Optional[httpx.AsyncClient] = None) -> list[PaperProvider]:
    return [
        SemanticScholarProvider(client=client),
        OpenAlexProvider(client=client),
        CrossrefProvider(client=client),
    ]
