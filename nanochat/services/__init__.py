"""
Domain services used by the generation orchestrator and the API layer:
credential resolution, model catalog, enrichment, media generation, cost,
rendering, titles, follow-up suggestions and cancellation.
"""
