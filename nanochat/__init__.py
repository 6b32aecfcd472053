"""
NanoChat generation backend.

Orchestrates streamed LLM generations for a self-hosted chat application:
credential resolution, enrichment (web search, URL scraping, memory, rules),
streamed completions with incremental persistence, media generation, cost
accounting and cooperative cancellation.
"""

__version__ = "1.0.0"
