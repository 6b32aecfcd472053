"""
Conversation Title Generation

New conversations start as "New Chat". After the first message a short
title is generated from that message in the background; it is only written
while the title is still the default, so a rename by the user always wins.
"""

import re

from nanochat.core.config.constants import TITLE_MAX_TOKENS, TITLE_TEMPERATURE, Stage
from nanochat.core.exceptions import ProviderError
from nanochat.core.interfaces import ChatStore
from nanochat.core.logging import get_logger, log_stage
from nanochat.llm_stream.providers import BaseProvider

logger = get_logger(__name__)

TITLE_PROMPT = '''Based on this message:
"""{message}"""

Generate a concise, specific title (max 4-5 words).
Generate only the title based on the message, nothing else. Do not call it "Generate Title" or anything that makes it obvious the title was written by AI.

Also, do not interact with the message directly or answer it. Just generate the title based on the message.

If it's a simple hi, just name it "Greeting" or something like that.
'''

_SURROUNDING_QUOTES = re.compile(r"""^["']|["']$""")


def clean_title(raw: str | None) -> str | None:
    title = (raw or "").strip()
    title = _SURROUNDING_QUOTES.sub("", title).strip()
    return title or None


class TitleGenerator:
    def __init__(self, provider: BaseProvider, store: ChatStore, model_id: str):
        self._provider = provider
        self._store = store
        self._model_id = model_id

    async def generate(self, conversation_id: str, first_message: str, api_key: str) -> str | None:
        """
        Generate and store a title for a conversation.

        Returns:
            The stored title, or None if nothing was written. Provider
            failures are logged, not raised.
        """
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None:
            return None

        try:
            raw = await self._provider.complete(
                [{"role": "user", "content": TITLE_PROMPT.format(message=first_message)}],
                self._model_id,
                api_key,
                max_tokens=TITLE_MAX_TOKENS,
                temperature=TITLE_TEMPERATURE,
            )
        except ProviderError as e:
            log_stage(logger, Stage.TITLE, "Title generation failed", level="warning", error=str(e))
            return None

        title = clean_title(raw)
        if not title:
            log_stage(logger, Stage.TITLE, "No title generated", level="debug")
            return None

        if not await self._store.update_title_if_default(conversation_id, title):
            log_stage(logger, Stage.TITLE, "Conversation already has a custom title", level="debug")
            return None

        log_stage(logger, Stage.TITLE, "Conversation title updated", title=title)
        return title
