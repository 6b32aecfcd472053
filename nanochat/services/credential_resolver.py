"""
Credential Resolver

Resolves the API key used for one orchestration run:

1. The user's own key for the provider (decrypted when flagged encrypted)
2. The operator-wide fallback key (`NANOGPT_API_KEY`)
3. Otherwise `CredentialNotConfiguredError` with a user-actionable message

Encryption at rest is owned by the persistence layer; this module only
calls the injected decryptor.
"""

from collections.abc import Awaitable, Callable

from nanochat.core.config.constants import Provider, Stage
from nanochat.core.exceptions import CredentialNotConfiguredError
from nanochat.core.interfaces import ChatStore
from nanochat.core.logging import get_logger, log_stage

logger = get_logger(__name__)

Decryptor = Callable[[str], Awaitable[str]]

MISSING_KEY_MESSAGE = (
    "No API key found. Please add your NanoGPT API key in Settings > Models to continue chatting."
)


class CredentialResolver:
    def __init__(
        self,
        store: ChatStore,
        global_api_key: str | None = None,
        decryptor: Decryptor | None = None,
    ):
        self._store = store
        self._global_api_key = global_api_key
        self._decryptor = decryptor

    async def resolve(self, user_id: str, provider: Provider = Provider.NANOGPT) -> str:
        """
        Resolve the API key for a user and provider.

        Raises:
            CredentialNotConfiguredError: No key available, or an encrypted
                key was found but no decryptor is configured
        """
        user_key = await self._store.get_user_key(user_id, provider)

        if user_key and user_key.key:
            if not user_key.encrypted:
                log_stage(logger, Stage.CREDENTIAL_RESOLUTION, "Using user API key", level="debug")
                return user_key.key

            if self._decryptor is None:
                raise CredentialNotConfiguredError(
                    "Stored API key is encrypted but no decryptor is configured",
                    details={"provider": Provider(provider).value},
                )
            log_stage(logger, Stage.CREDENTIAL_RESOLUTION, "Using decrypted user API key", level="debug")
            return await self._decryptor(user_key.key)

        if self._global_api_key:
            log_stage(logger, Stage.CREDENTIAL_RESOLUTION, "Using operator API key", level="debug")
            return self._global_api_key

        raise CredentialNotConfiguredError(
            MISSING_KEY_MESSAGE, details={"provider": Provider(provider).value}
        ).with_suggestion("Add your NanoGPT API key in Settings > Models")
