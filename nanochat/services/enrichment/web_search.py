"""
Web Search Provider

Runs a gateway web search for the last user message and formats the hits
into a context block for the system prompt.

    POST /api/web {"query": ..., "depth": "standard" | "deep"}

Flat fees: standard 0.006 USD, deep 0.06 USD, charged only on success.
"""

from typing import Any

import httpx

from nanochat.core.config.constants import Stage, WebSearchMode
from nanochat.core.exceptions import WebSearchError
from nanochat.core.logging import get_logger, log_stage
from nanochat.services.cost import web_search_cost
from nanochat.services.enrichment.base import EnrichmentResult, post_json

logger = get_logger(__name__)

WEB_SEARCH_PATH = "/api/web"


def format_search_results(query: str, results: list[dict[str, Any]]) -> str:
    lines = [f'Web search results for "{query}":', ""]
    for index, result in enumerate(results, start=1):
        title = result.get("title") or result.get("url") or "Untitled"
        url = result.get("url") or result.get("link") or ""
        snippet = result.get("snippet") or result.get("content") or result.get("description") or ""
        lines.append(f"[{index}] {title}")
        if url:
            lines.append(f"URL: {url}")
        if snippet:
            lines.append(snippet.strip())
        lines.append("")
    return "\n".join(lines).rstrip()


def _extract_results(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    if isinstance(payload, dict):
        for key in ("results", "data"):
            value = payload.get(key)
            if isinstance(value, list):
                return [r for r in value if isinstance(r, dict)]
            if isinstance(value, dict):
                return _extract_results(value)
    return []


class WebSearchProvider:
    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def search(
        self, query: str, api_key: str, depth: WebSearchMode = WebSearchMode.STANDARD
    ) -> EnrichmentResult[str]:
        """
        Search the web and return a formatted context block.

        An empty result list is still a success (the fee is charged by the
        gateway either way); transport and HTTP errors become a failed result.
        """
        if depth == WebSearchMode.OFF:
            depth = WebSearchMode.STANDARD

        try:
            payload = await post_json(
                self._client, WEB_SEARCH_PATH, api_key, {"query": query, "depth": depth.value}
            )
        except (httpx.HTTPError, ValueError) as e:
            log_stage(logger, Stage.WEB_SEARCH, "Web search failed", level="warning", error=str(e))
            return EnrichmentResult.failure(WebSearchError.from_exception(e, depth=depth.value))

        results = _extract_results(payload)
        context = format_search_results(query, results)
        cost = web_search_cost(depth)
        log_stage(
            logger, Stage.WEB_SEARCH, "Web search completed", result_count=len(results), cost=cost
        )
        return EnrichmentResult.success(context, cost=cost)
