"""Completion providers and the generation orchestrator."""
