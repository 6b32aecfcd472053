from nanochat.llm_stream.models.generation_request import GenerationRequest, ImageInput

__all__ = ["GenerationRequest", "ImageInput"]
