"""
Validation Exceptions

All exceptions related to request validation
"""

from nanochat.core.exceptions.base import NanoChatError


class ValidationError(NanoChatError):
    """
    Raised when request validation fails.

    This is the base class for all validation-related errors.
    """

    http_status = 400


class InvalidInputError(ValidationError):
    """
    Raised when input validation fails.

    Common causes:
    - No message and no conversation id
    - Message id that does not belong to the conversation
    - Missing user identity
    """
    pass


class UnauthenticatedError(ValidationError):
    """Raised when a request carries no user identity."""

    http_status = 401
