"""
Exception Module

Structured exception hierarchy for the generation backend.
All exceptions are organized by theme for better maintainability and debuggability.

Module Structure:
-----------------
- **base.py**: NanoChatError base class
- **configuration.py**: Credential, model and ownership errors raised before a run starts
- **validation.py**: Request validation exceptions
- **generation.py**: Generation lifecycle exceptions (in progress, cancelled, media)
- **provider.py**: Completion provider exceptions
- **enrichment.py**: Web search, scrape, memory and catalog exceptions

Usage:
------
```python
from nanochat.core.exceptions import CredentialNotConfiguredError, ProviderAPIError
```
"""

from nanochat.core.exceptions.base import NanoChatError
from nanochat.core.exceptions.configuration import (
    ConfigurationError,
    ConversationNotFoundError,
    CredentialNotConfiguredError,
    MessageNotFoundError,
    ModelNotEnabledError,
    StoredFileNotFoundError,
)
from nanochat.core.exceptions.enrichment import (
    CatalogUnavailableError,
    EnrichmentError,
    MemoryServiceError,
    ScrapeError,
    WebSearchError,
)
from nanochat.core.exceptions.generation import (
    GenerationCancelledError,
    GenerationError,
    GenerationInProgressError,
    MediaGenerationError,
)
from nanochat.core.exceptions.provider import (
    ProviderAPIError,
    ProviderAuthenticationError,
    ProviderError,
    ProviderNotAvailableError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from nanochat.core.exceptions.validation import (
    InvalidInputError,
    UnauthenticatedError,
    ValidationError,
)

__all__ = [
    # Base
    "NanoChatError",
    # Configuration
    "ConfigurationError",
    "ConversationNotFoundError",
    "CredentialNotConfiguredError",
    "MessageNotFoundError",
    "ModelNotEnabledError",
    "StoredFileNotFoundError",
    # Enrichment
    "CatalogUnavailableError",
    "EnrichmentError",
    "MemoryServiceError",
    "ScrapeError",
    "WebSearchError",
    # Generation
    "GenerationCancelledError",
    "GenerationError",
    "GenerationInProgressError",
    "MediaGenerationError",
    # Provider
    "ProviderAPIError",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderNotAvailableError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    # Validation
    "InvalidInputError",
    "UnauthenticatedError",
    "ValidationError",
]
