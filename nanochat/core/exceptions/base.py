"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.
"""

from typing import Any


class NanoChatError(Exception):
    """
    Base exception for all generation backend errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Conversation ID correlation
    - Structured error logging
    - A stable HTTP status for errors that reach the API layer

    Attributes:
        message: Error message
        conversation_id: Conversation ID for correlation (if available)
        details: Additional error details (dict)
        http_status: Status code used when the error is returned to a client

    Example:
        raise ModelNotEnabledError(
            "Model not found or not enabled",
            conversation_id="abc-123",
            details={"model_id": "gpt-4o"}
        )
    """

    http_status: int = 500

    def __init__(
        self, message: str, conversation_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.conversation_id = conversation_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, conversation_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "conversation_id": self.conversation_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "NanoChatError":
        """Add a suggestion to help users fix the error."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "NanoChatError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        conversation_str = f", conversation_id='{self.conversation_id}'" if self.conversation_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{conversation_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        conversation_id: str | None = None,
        **details
    ) -> "NanoChatError":
        """
        Create an error from another exception.

        Useful for wrapping third-party exceptions (httpx, openai) with
        additional context.

        Example:
            >>> try:
            ...     response.raise_for_status()
            ... except httpx.HTTPStatusError as e:
            ...     raise WebSearchError.from_exception(e, conversation_id="abc-123")
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, conversation_id=conversation_id, details=error_details)
