"""
Unit Tests for CredentialResolver

Resolution order: the user's key, then the operator key, then an error.
"""

import pytest

from nanochat.core.config.constants import Provider
from nanochat.core.exceptions import CredentialNotConfiguredError
from nanochat.core.models import UserKey
from nanochat.services.credential_resolver import MISSING_KEY_MESSAGE, CredentialResolver
from test_fixtures import USER_API_KEY, USER_ID


@pytest.mark.unit
class TestCredentialResolver:
    @pytest.mark.asyncio
    async def test_user_key_wins_over_global(self, seeded_store):
        resolver = CredentialResolver(seeded_store, global_api_key="sk-operator")

        assert await resolver.resolve(USER_ID) == USER_API_KEY

    @pytest.mark.asyncio
    async def test_global_key_fallback(self, store):
        resolver = CredentialResolver(store, global_api_key="sk-operator")

        assert await resolver.resolve(USER_ID) == "sk-operator"

    @pytest.mark.asyncio
    async def test_empty_user_key_falls_back(self, store):
        await store.set_user_key(UserKey(user_id=USER_ID, provider=Provider.NANOGPT, key=""))
        resolver = CredentialResolver(store, global_api_key="sk-operator")

        assert await resolver.resolve(USER_ID) == "sk-operator"

    @pytest.mark.asyncio
    async def test_no_key_anywhere(self, store):
        resolver = CredentialResolver(store)

        with pytest.raises(CredentialNotConfiguredError) as exc_info:
            await resolver.resolve(USER_ID)

        assert exc_info.value.message == MISSING_KEY_MESSAGE
        assert exc_info.value.details["provider"] == "nanogpt"
        assert "suggestion" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_encrypted_key_is_decrypted(self, store):
        await store.set_user_key(
            UserKey(user_id=USER_ID, provider=Provider.NANOGPT, key="ciphertext", encrypted=True)
        )

        async def decrypt(value: str) -> str:
            return f"plain-{value}"

        resolver = CredentialResolver(store, decryptor=decrypt)

        assert await resolver.resolve(USER_ID) == "plain-ciphertext"

    @pytest.mark.asyncio
    async def test_encrypted_key_without_decryptor(self, store):
        await store.set_user_key(
            UserKey(user_id=USER_ID, provider=Provider.NANOGPT, key="ciphertext", encrypted=True)
        )
        resolver = CredentialResolver(store, global_api_key="sk-operator")

        with pytest.raises(CredentialNotConfiguredError):
            await resolver.resolve(USER_ID)

    @pytest.mark.asyncio
    async def test_keys_are_per_provider(self, store):
        await store.set_user_key(UserKey(user_id=USER_ID, provider=Provider.OPENAI, key="sk-openai"))
        resolver = CredentialResolver(store)

        assert await resolver.resolve(USER_ID, Provider.OPENAI) == "sk-openai"
        with pytest.raises(CredentialNotConfiguredError):
            await resolver.resolve(USER_ID, Provider.NANOGPT)
