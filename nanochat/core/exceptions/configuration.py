"""
Configuration Exceptions

Errors raised synchronously while a generation request is being set up:
missing credentials, models that are not enabled, and foreign conversations.
These are mapped straight to HTTP responses.
"""

from nanochat.core.exceptions.base import NanoChatError


class ConfigurationError(NanoChatError):
    """Raised when configuration is invalid or missing."""
    pass


class CredentialNotConfiguredError(ConfigurationError):
    """
    Raised when no API key can be resolved for a user.

    Common causes:
    - User has not stored a key and no operator key is configured
    - Stored key is encrypted but no decryptor is installed
    """

    http_status = 403


class ModelNotEnabledError(ConfigurationError):
    """
    Raised when the requested model is neither enabled for the user nor
    present in the gateway catalog (or the catalog could not be read).
    """

    http_status = 400


class ConversationNotFoundError(ConfigurationError):
    """Raised when a conversation does not exist or belongs to another user."""

    http_status = 403


class MessageNotFoundError(ConfigurationError):
    """Raised when a message does not exist in the given conversation."""

    http_status = 404


class StoredFileNotFoundError(ConfigurationError):
    """Raised when a stored file id is unknown or its bytes are gone."""

    http_status = 404
