"""
Enrichment providers: optional context added around a completion.

Every provider returns an `EnrichmentResult`; none of them raise on
provider failure.
"""

from nanochat.services.enrichment.base import EnrichmentResult
from nanochat.services.enrichment.memory import MemoryService, memory_context_block
from nanochat.services.enrichment.rules import collect_rules, format_rules_block
from nanochat.services.enrichment.url_scraper import ScrapeOutcome, UrlScraper, extract_urls
from nanochat.services.enrichment.web_search import WebSearchProvider

__all__ = [
    "EnrichmentResult",
    "MemoryService",
    "ScrapeOutcome",
    "UrlScraper",
    "WebSearchProvider",
    "collect_rules",
    "extract_urls",
    "format_rules_block",
    "memory_context_block",
]
