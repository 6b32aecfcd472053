"""
LLM Provider Exceptions

All exceptions related to completion provider operations (the inference
gateway reached through the OpenAI SDK).
"""

from nanochat.core.exceptions.base import NanoChatError


class ProviderError(NanoChatError):
    """Base exception for completion provider errors."""

    http_status = 502


class ProviderNotAvailableError(ProviderError):
    """
    Raised when the provider cannot be reached.

    Common causes:
    - Gateway is down
    - Network connectivity issues
    """
    pass


class ProviderAuthenticationError(ProviderError):
    """
    Raised when provider authentication fails.

    Common causes:
    - Invalid API key
    - Expired API key
    - Insufficient balance on the account
    """
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when the provider rejects the request with a rate limit."""
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when a provider request times out."""
    pass


class ProviderAPIError(ProviderError):
    """
    Raised when the provider API returns an error.

    Common causes:
    - Invalid request format
    - Unsupported model
    - Content policy violation
    - Token limit exceeded
    """
    pass
