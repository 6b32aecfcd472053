"""
Enrichment Result Type

Enrichment steps (web search, URL scraping, memory, compression) are
optional: a failure must never fail the generation. Providers therefore
return an `EnrichmentResult` instead of raising, and the orchestrator
decides what to do with a failed result (usually: log it and move on).
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx

from nanochat.core.exceptions import EnrichmentError

T = TypeVar("T")


@dataclass
class EnrichmentResult(Generic[T]):
    """
    Outcome of one enrichment call.

    Attributes:
        value: Provider output when the call succeeded
        error: The wrapped failure when it did not
        cost: Flat fee in USD incurred by a successful call
    """

    value: T | None = None
    error: EnrichmentError | None = None
    cost: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, cost: float = 0.0) -> "EnrichmentResult[T]":
        return cls(value=value, cost=cost)

    @classmethod
    def failure(cls, error: EnrichmentError) -> "EnrichmentResult[T]":
        return cls(error=error)


def bearer_headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}


async def post_json(client: httpx.AsyncClient, path: str, api_key: str, payload: dict) -> dict:
    """POST a JSON body to the gateway and return the decoded response."""
    response = await client.post(path, json=payload, headers=bearer_headers(api_key))
    response.raise_for_status()
    return response.json()
