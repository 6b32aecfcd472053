"""
URL Scraper

Finds URLs in the last user message and asks the gateway to scrape them.

    POST /api/scrape-urls {"urls": [...]}
    → {"results": [{"url", "success", "markdown" | "content", "title", "error"}]}

Each successfully scraped URL contributes its text to the system prompt and
0.001 USD to the message cost; failed URLs are skipped individually.
"""

import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from nanochat.core.config.constants import MAX_URLS_PER_MESSAGE, Stage
from nanochat.core.exceptions import ScrapeError
from nanochat.core.logging import get_logger, log_stage
from nanochat.services.cost import scrape_cost
from nanochat.services.enrichment.base import EnrichmentResult, post_json

logger = get_logger(__name__)

SCRAPE_PATH = "/api/scrape-urls"

_URL_RE = re.compile(r"(?:https?://|www\.)[^\s)<>\"'\]]+", re.IGNORECASE)


def normalize_url(candidate: str) -> str | None:
    c = str(candidate or "").strip().strip("()[]{}<>\"'")
    c = c.rstrip(".,);]}>\"'?!")
    if not c:
        return None
    if c.lower().startswith(("http://", "https://")):
        return c
    if c.lower().startswith("www."):
        return f"https://{c}"
    return None


def extract_urls(text: str, max_urls: int = MAX_URLS_PER_MESSAGE) -> list[str]:
    """Unique http(s) and www. URLs in order of appearance, at most `max_urls`."""
    if max_urls <= 0:
        return []

    out: list[str] = []
    seen: set[str] = set()
    for raw in _URL_RE.findall(text or ""):
        url = normalize_url(raw)
        if not url or url in seen:
            continue
        seen.add(url)
        out.append(url)
        if len(out) >= max_urls:
            break
    return out


@dataclass
class ScrapeOutcome:
    content: str = ""
    success_count: int = 0
    failed_urls: list[str] = field(default_factory=list)


def format_scraped_page(url: str, title: str | None, text: str) -> str:
    header = f"[Content from {url}]" if not title else f"[Content from {url}: {title}]"
    return f"{header}\n{text.strip()}\n\n"


class UrlScraper:
    def __init__(self, client: httpx.AsyncClient, max_urls: int = MAX_URLS_PER_MESSAGE):
        self._client = client
        self._max_urls = max_urls

    async def scrape_message(self, text: str, api_key: str) -> EnrichmentResult[ScrapeOutcome]:
        urls = extract_urls(text, self._max_urls)
        if not urls:
            return EnrichmentResult.success(ScrapeOutcome())
        return await self.scrape(urls, api_key)

    async def scrape(self, urls: list[str], api_key: str) -> EnrichmentResult[ScrapeOutcome]:
        try:
            payload = await post_json(self._client, SCRAPE_PATH, api_key, {"urls": urls})
        except (httpx.HTTPError, ValueError) as e:
            log_stage(logger, Stage.URL_SCRAPE, "URL scrape failed", level="warning", error=str(e))
            return EnrichmentResult.failure(ScrapeError.from_exception(e, urls=urls))

        outcome = ScrapeOutcome()
        parts: list[str] = []
        results: list[dict[str, Any]] = (payload.get("results") or []) if isinstance(payload, dict) else []
        for result in results:
            if not isinstance(result, dict):
                continue
            url = result.get("url") or ""
            text = result.get("markdown") or result.get("content") or ""
            if result.get("success", True) is False or not text.strip():
                outcome.failed_urls.append(url)
                log_stage(
                    logger,
                    Stage.URL_SCRAPE,
                    "Skipping URL that failed to scrape",
                    level="debug",
                    url=url,
                    error=result.get("error"),
                )
                continue
            parts.append(format_scraped_page(url, result.get("title"), text))
            outcome.success_count += 1

        outcome.content = "".join(parts)
        cost = scrape_cost(outcome.success_count)
        log_stage(
            logger,
            Stage.URL_SCRAPE,
            "URL scrape completed",
            requested=len(urls),
            succeeded=outcome.success_count,
            cost=cost,
        )
        return EnrichmentResult.success(outcome, cost=cost)
