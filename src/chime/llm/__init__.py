"""Agent backend for processing scheduled prompts."""

from chime.llm.agent import AnthropicAgent, build_system_prompt
from chime.llm.retry import (
    RetryConfig,
    is_limit_error,
    is_retryable_error,
    with_retry,
)

__all__ = [
    # Agent
    "AnthropicAgent",
    "build_system_prompt",
    # Retry
    "RetryConfig",
    "is_limit_error",
    "is_retryable_error",
    "with_retry",
]
