"""
External search cache.

Paper search results keyed by normalised query, with a TTL:
- InMemorySearchCache: per process, FIFO eviction at a fixed size
- RedisSearchCache: shared across processes via redis.asyncio
"""

import hashlib
import json
import time
from collections import OrderedDict
from datetime import timedelta
from typing import Callable, Optional, Protocol, runtime_checkable

import redis.asyncio as redis

from muse.config import ExternalSearchConfig, get_external_search_config, get_settings
from muse.models.papers import ExternalPaper


def normalize_cache_key(query: str) -> str:
    """Lower-case and collapse whitespace so equivalent queries share a slot."""
    return " ".join(query.lower().split())


@runtime_checkable
class SearchCache(Protocol):
    """TTL cache of paper lists."""

    async def get(self, query: str) -> Optional[list[ExternalPaper]]:
        ...

    async def set(self, query: str, papers: list[ExternalPaper]) -> None:
        ...


class InMemorySearchCache:
    """
    Process-local cache.

    Entries expire ``ttl_seconds`` after insertion. When full, the
    oldest-inserted entry is evicted first.
    """

    def __init__(
        self,
        ttl_seconds: int = 24 * 3600,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, list[ExternalPaper]]]" = OrderedDict()

    async def get(self, query: str) -> Optional[list[ExternalPaper]]:
        key = normalize_cache_key(query)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, papers = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return list(papers)

    async def set(self, query: str, papers: list[ExternalPaper]) -> None:
        key = normalize_cache_key(query)
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), list(papers))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisSearchCache:
    """
    Redis-backed cache.

    Keys look like ``<prefix>:papers:<sha256(query)[:16]>``; values are
    JSON lists of papers stored with ``SETEX``.
    """

    namespace = "papers"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: int = 24 * 3600,
        prefix: str = "muse",
    ):
        self.redis_url = redis_url or get_settings().redis_url
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _ensure_connected(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client  # type: ignore

    def _make_key(self, query: str) -> str:
        digest = hashlib.sha256(normalize_cache_key(query).encode("utf-8")).hexdigest()[:16]
        return f"{self.prefix}:{self.namespace}:{digest}"

    async def get(self, query: str) -> Optional[list[ExternalPaper]]:
        client = await self._ensure_connected()
        value = await client.get(self._make_key(query))
        if not value:
            return None
        return [ExternalPaper.model_validate(item) for item in json.loads(value)]

    async def set(self, query: str, papers: list[ExternalPaper]) -> None:
        client = await self._ensure_connected()
        payload = json.dumps([p.model_dump(mode="json") for p in papers])
        await client.setex(self._make_key(query), timedelta(seconds=self.ttl_seconds), payload)

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        client = await self._ensure_connected()
        return await client.ping()


def create_search_cache(config: Optional[ExternalSearchConfig] = None) -> SearchCache:
    """Build the cache selected by ``MUSE_EXTERNAL_CACHE_BACKEND``."""
    config = config or get_external_search_config()
    if config.cache_backend == "redis":
        return RedisSearchCache(ttl_seconds=config.cache_ttl_seconds)
    return InMemorySearchCache(
        ttl_seconds=config.cache_ttl_seconds,
        max_entries=config.cache_max_entries,
    )
