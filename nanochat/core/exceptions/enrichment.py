"""
Enrichment Exceptions

Errors from the optional context providers (web search, URL scraping,
memory/compression, model catalog). They are carried inside
`EnrichmentResult` values and logged; they never fail a generation.
"""

from nanochat.core.exceptions.base import NanoChatError


class EnrichmentError(NanoChatError):
    """Base exception for enrichment provider errors."""

    http_status = 502


class WebSearchError(EnrichmentError):
    pass


class ScrapeError(EnrichmentError):
    pass


class MemoryServiceError(EnrichmentError):
    """Raised when fetching, compressing or updating memory fails."""
    pass


class CatalogUnavailableError(EnrichmentError):
    """Raised when the gateway model catalog cannot be fetched."""
    pass
