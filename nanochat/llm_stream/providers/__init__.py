from nanochat.llm_stream.providers.base_provider import BaseProvider, ProviderConfig, StreamChunk
from nanochat.llm_stream.providers.fake_provider import FakeProvider
from nanochat.llm_stream.providers.gateway_provider import GatewayProvider

__all__ = ["BaseProvider", "FakeProvider", "GatewayProvider", "ProviderConfig", "StreamChunk"]
