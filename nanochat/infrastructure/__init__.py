"""Infrastructure adapters: persistence and media storage."""
