"""
Cost Calculation

Per-message cost is token usage priced per million tokens plus the flat fees
of the enrichment steps that ran (web search, URL scraping).
"""

from dataclasses import dataclass

from nanochat.core.config.constants import (
    URL_SCRAPE_COST_PER_URL,
    WEB_SEARCH_COST_DEEP,
    WEB_SEARCH_COST_STANDARD,
    WebSearchMode,
)
from nanochat.core.models import ModelPricing

TOKENS_PER_PRICING_UNIT = 1_000_000


@dataclass
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int


def web_search_cost(mode: WebSearchMode) -> float:
    if mode == WebSearchMode.DEEP:
        return WEB_SEARCH_COST_DEEP
    if mode == WebSearchMode.STANDARD:
        return WEB_SEARCH_COST_STANDARD
    return 0.0


def scrape_cost(successful_urls: int) -> float:
    return successful_urls * URL_SCRAPE_COST_PER_URL


def calculate_message_cost(
    usage: TokenUsage | None,
    pricing: ModelPricing | None,
    search_cost: float = 0.0,
    scrape_fee: float = 0.0,
) -> float | None:
    """
    Cost of one assistant message in USD.

    Returns None when no usage was reported or the model has no pricing; the
    flat enrichment fees are only added on top of a token cost. Prices that
    are missing from a pricing entry count as zero.

    Example:
        >>> calculate_message_cost(TokenUsage(1000, 2000), ModelPricing(1.0, 2.0), 0.006, 0.002)
        0.013
    """
    if usage is None or pricing is None:
        return None

    token_cost = (
        usage.prompt_tokens * (pricing.prompt or 0.0)
        + usage.completion_tokens * (pricing.completion or 0.0)
    ) / TOKENS_PER_PRICING_UNIT
    return round(token_cost + search_cost + scrape_fee, 10)
