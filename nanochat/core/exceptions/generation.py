"""
Generation Exceptions

Errors related to the lifecycle of a generation run.
"""

from nanochat.core.exceptions.base import NanoChatError


class GenerationError(NanoChatError):
    """Base exception for generation lifecycle errors."""
    pass


class GenerationInProgressError(GenerationError):
    """
    Raised when a generation is requested for a conversation that already
    has one running (the `generating` flag is set or a cancellation handle
    is registered).
    """

    http_status = 409


class GenerationCancelledError(GenerationError):
    """Raised inside a run when its cancellation handle fires."""

    http_status = 499


class MediaGenerationError(GenerationError):
    """
    Raised when an image or video job fails.

    Common causes:
    - Gateway rejected the submission
    - Job reported FAILED status
    - Polling budget exhausted
    """

    http_status = 502
