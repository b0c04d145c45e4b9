"""
LLM Client

Wrapper for Google Gemini API with:
- Retry with exponential backoff (shared backoff helper)
- Bounded concurrency across callers
- Mock mode for testing
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, runtime_checkable

from google import genai
from google.genai import types as genai_types

from muse.agent.retry import BackoffPolicy, NonRetryableError, call_with_backoff
from muse.config import get_retrieval_config, get_settings

logger = logging.getLogger(__name__)


class LLMModel(str, Enum):
    """Available LLM models."""
    GEMINI_FLASH = "gemini-2.5-flash"
    GEMINI_PRO = "gemini-2.5-pro"


@dataclass
class LLMResponse:
    """Response from LLM."""
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0


class QuotaExhaustedError(NonRetryableError, RuntimeError):
    """Gemini daily quota is used up; retrying today will not help."""


@runtime_checkable
class LanguageModel(Protocol):
    """Anything that turns a prompt into text."""

    async def complete(self, prompt: str) -> str:
        ...


class LLMClient:
    """
    Google Gemini API client.

    Runs in mock mode when no API key is configured: responses then come
    from ``set_mock_responses`` / ``set_mock_handler``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: Optional[int] = None,
        initial_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        semaphore_limit: int = 8,
        temperature: float = 0.2,
    ):
        settings = get_settings()
        config = get_retrieval_config()
        self.api_key = api_key or settings.google_ai_api_key
        self.model = (model.value if isinstance(model, LLMModel) else model) or config.model
        self.temperature = temperature
        self.policy = BackoffPolicy(
            max_retries=config.max_retries if max_retries is None else max_retries,
            initial_delay=config.initial_delay if initial_delay is None else initial_delay,
            timeout=config.llm_timeout if timeout is None else timeout,
        )
        self._client: Optional[genai.Client] = None
        self._mock_mode = self.api_key is None
        self._semaphore = asyncio.Semaphore(semaphore_limit)

        # Mock responses for testing
        self._mock_responses: list[str] = []
        self._mock_index = 0
        self._mock_handler: Optional[Callable[[str], str]] = None
        self.prompts: list[str] = []

    async def initialize(self) -> None:
        """Initialize the Gemini client."""
        if self._mock_mode or self._client is not None:
            return
        self._client = genai.Client(api_key=self.api_key)

    async def complete(self, prompt: str) -> str:
        """Return the model's text for *prompt*."""
        response = await self.generate(prompt)
        return response.content

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 8192,
    ) -> LLMResponse:
        """
        Generate text completion.

        Args:
            prompt: User prompt
            system_prompt: Optional system instructions
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with generated content
        """
        if self._mock_mode:
            return self._generate_mock_response(prompt)

        await self.initialize()
        start = time.monotonic()

        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\n{prompt}"

        config = genai_types.GenerateContentConfig(
            temperature=self.temperature if temperature is None else temperature,
            max_output_tokens=max_tokens,
        )

        async def _call():
            async with self._semaphore:
                try:
                    return await asyncio.to_thread(
                        self._client.models.generate_content,
                        model=self.model,
                        contents=full_prompt,
                        config=config,
                    )
                except Exception as e:
                    if self._is_daily_quota_error(e):
                        logger.error("Gemini daily quota exhausted. Cannot retry.")
                        raise QuotaExhaustedError(
                            "Gemini API daily quota exhausted. "
                            "Wait for the quota to reset or upgrade the plan."
                        ) from e
                    raise

        response = await call_with_backoff(
            _call, self.policy, description=f"gemini {self.model}",
        )

        usage = response.usage_metadata
        return LLMResponse(
            content=response.text or "",
            model=self.model,
            prompt_tokens=(usage.prompt_token_count or 0) if usage else 0,
            completion_tokens=(usage.candidates_token_count or 0) if usage else 0,
            total_tokens=(usage.total_token_count or 0) if usage else 0,
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    @staticmethod
    def _is_daily_quota_error(error: Exception) -> bool:
        """Check if this is an unretryable daily quota exhaustion."""
        err_str = str(error)
        return "FreeTier" in err_str or "PerDay" in err_str or "free_tier" in err_str

    # ----- Mock mode -----

    def _generate_mock_response(self, prompt: str) -> LLMResponse:
        """Generate a mock response for testing."""
        self.prompts.append(prompt)
        if self._mock_handler is not None:
            content = self._mock_handler(prompt)
        elif self._mock_responses:
            content = self._mock_responses[self._mock_index % len(self._mock_responses)]
            self._mock_index += 1
        else:
            content = '{"results": {}}'

        return LLMResponse(
            content=content,
            model="mock",
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(content.split()),
            total_tokens=len(prompt.split()) + len(content.split()),
            latency_ms=0,
        )

    def set_mock_responses(self, responses: list[str]) -> None:
        """Set mock responses for testing."""
        self._mock_responses = responses
        self._mock_index = 0

    def set_mock_handler(self, handler: Callable[[str], str]) -> None:
        """Answer every mock prompt with ``handler(prompt)``."""
        self._mock_handler = handler

    @property
    def is_mock_mode(self) -> bool:
        """Check if running in mock mode."""
        return self._mock_mode
