"""
Agent Layer

Language model access and the shared retry helper.
"""

from muse.agent.llm_client import (
    LanguageModel,
    LLMClient,
    LLMModel,
    LLMResponse,
    QuotaExhaustedError,
)
from muse.agent.retry import (
    BackoffPolicy,
    NonRetryableError,
    call_with_backoff,
    retry_after_seconds,
)

__all__ = [
    "LanguageModel",
    "LLMClient",
    "LLMModel",
    "LLMResponse",
    "QuotaExhaustedError",
    "BackoffPolicy",
    "NonRetryableError",
    "call_with_backoff",
    "retry_after_seconds",
]
