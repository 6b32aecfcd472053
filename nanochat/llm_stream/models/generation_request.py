from pydantic import BaseModel, Field, model_validator

from nanochat.core.config.constants import ReasoningEffort, WebSearchMode
from nanochat.core.models import ImageAttachment


class ImageInput(BaseModel):
    """An image attached to the outgoing user message."""

    url: str = Field(..., min_length=1)
    storage_id: str | None = None
    file_name: str | None = None

    def to_attachment(self) -> ImageAttachment:
        return ImageAttachment(url=self.url, storage_id=self.storage_id, file_name=self.file_name)


class GenerationRequest(BaseModel):
    """
    Input of one generation.

    A request without a conversation id starts a new conversation and must
    carry a message; a request for an existing conversation may omit the
    message to regenerate from the stored history.
    """

    model_config = {"frozen": True}

    message: str | None = Field(default=None, description="User message text")
    model_id: str = Field(..., min_length=1, description="Gateway model id")
    conversation_id: str | None = Field(default=None, description="Existing conversation id")
    web_search_enabled: bool | None = Field(default=None, description="Legacy web search toggle")
    web_search_mode: WebSearchMode | None = Field(default=None, description="off, standard or deep")
    images: list[ImageInput] | None = Field(default=None, description="Attached images")
    reasoning_effort: ReasoningEffort | None = Field(default=None, description="Reasoning effort hint")

    @model_validator(mode="after")
    def require_message_for_new_conversation(self) -> "GenerationRequest":
        if self.conversation_id is None and self.message is None:
            raise ValueError("You must provide a message when creating a new conversation")
        return self

    @property
    def search_enabled(self) -> bool:
        """`web_search_mode` wins over the legacy boolean when it is set."""
        if self.web_search_mode is not None:
            return self.web_search_mode != WebSearchMode.OFF
        return bool(self.web_search_enabled)

    @property
    def search_depth(self) -> WebSearchMode:
        if self.web_search_mode in (WebSearchMode.STANDARD, WebSearchMode.DEEP):
            return self.web_search_mode
        return WebSearchMode.STANDARD if self.search_enabled else WebSearchMode.OFF

    def attachments(self) -> list[ImageAttachment]:
        return [image.to_attachment() for image in self.images or []]
