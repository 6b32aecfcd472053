"""API package: routes, request/response models, middleware and dependencies."""
