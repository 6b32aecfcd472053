"""HTTP application layer: FastAPI app factory, routes, middleware and dependencies."""
