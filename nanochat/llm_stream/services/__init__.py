"""Generation orchestration services."""

from nanochat.llm_stream.services.generation_orchestrator import GenerationOrchestrator

__all__ = ["GenerationOrchestrator"]
