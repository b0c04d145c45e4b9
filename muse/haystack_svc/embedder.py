"""
Embedders

Turn chunk and query text into vectors. Two providers:
- SentenceTransformersEmbedder: local model through Haystack's text embedder
- GeminiEmbedder: Google embedding API, wrapped in retry-with-backoff
"""

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

from google import genai
from haystack.components.embedders import SentenceTransformersTextEmbedder

from muse.agent.retry import BackoffPolicy, call_with_backoff
from muse.config import IndexingConfig, get_indexing_config, get_settings

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Text → fixed-dimension vector."""

    async def embed(self, text: str) -> list[float]:
        ...


class SentenceTransformersEmbedder:
    """Local sentence-transformers model (MiniLM by default, 384 dims)."""

    def __init__(self, model: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self.model = model
        self._embedder = SentenceTransformersTextEmbedder(model=model)
        self._warm = False
        self._warm_lock = asyncio.Lock()

    async def _ensure_warm(self) -> None:
        if self._warm:
            return
        async with self._warm_lock:
            if not self._warm:
                await asyncio.to_thread(self._embedder.warm_up)
                self._warm = True
                logger.info("Loaded embedding model %s", self.model)

    async def embed(self, text: str) -> list[float]:
        await self._ensure_warm()
        result = await asyncio.to_thread(self._embedder.run, text=text)
        return list(result["embedding"])


class GeminiEmbedder:
    """Google ``embed_content`` over the network."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-004",
        policy: Optional[BackoffPolicy] = None,
    ):
        self.api_key = api_key or get_settings().google_ai_api_key
        if not self.api_key:
            raise ValueError("GeminiEmbedder needs GOOGLE_AI_API_KEY")
        self.model = model
        self.policy = policy or BackoffPolicy(timeout=30.0)
        self._client = genai.Client(api_key=self.api_key)

    async def embed(self, text: str) -> list[float]:
        async def _call():
            return await asyncio.to_thread(
                self._client.models.embed_content,
                model=self.model,
                contents=text,
            )

        response = await call_with_backoff(
            _call, self.policy, description=f"embed {self.model}",
        )
        return list(response.embeddings[0].values)


def create_embedder(config: Optional[IndexingConfig] = None) -> Embedder:
    """Build the embedder selected by ``MUSE_INDEX_EMBEDDING_PROVIDER``."""
    config = config or get_indexing_config()
    if config.embedding_provider == "gemini":
        return GeminiEmbedder(model=config.gemini_embedding_model)
    return SentenceTransformersEmbedder(model=config.embedding_model)
