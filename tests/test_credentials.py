from __future__ import annotations

import asyncio

from audio_scribe.core.storage.credentials import (
    GEMINI_API_KEY_ENV,
    StaticCredentialProvider,
    StoredCredentialProvider,
)
from audio_scribe.core.storage.api_keys import InMemoryApiKeyStore


def test_static_provider_treats_empty_as_absent():
    async def run():
        assert await StaticCredentialProvider("k").get_credential() == "k"
        assert await StaticCredentialProvider("").get_credential() is None
        assert await StaticCredentialProvider(None).get_credential() is None

    asyncio.run(run())


def test_stored_key_wins_over_environment(monkeypatch):
    monkeypatch.setenv(GEMINI_API_KEY_ENV, "from-env")
    provider = StoredCredentialProvider(InMemoryApiKeyStore("from-store"))

    assert asyncio.run(provider.get_credential()) == "from-store"


def test_environment_is_used_when_store_is_empty(monkeypatch):
    monkeypatch.setenv(GEMINI_API_KEY_ENV, "from-env")
    provider = StoredCredentialProvider(InMemoryApiKeyStore())

    assert asyncio.run(provider.get_credential()) == "from-env"


def test_prompt_answer_is_trimmed_and_persisted(monkeypatch):
    monkeypatch.delenv(GEMINI_API_KEY_ENV, raising=False)
    store = InMemoryApiKeyStore()
    calls: list[bool] = []

    async def prompt() -> str | None:
        calls.append(True)
        return "  typed-key \n"

    provider = StoredCredentialProvider(store, prompt=prompt)

    assert asyncio.run(provider.get_credential()) == "typed-key"
    assert store.load() == "typed-key"
    assert asyncio.run(provider.get_credential()) == "typed-key"
    assert calls == [True]


def test_dismissed_prompt_yields_none(monkeypatch):
    monkeypatch.delenv(GEMINI_API_KEY_ENV, raising=False)
    store = InMemoryApiKeyStore()

    async def prompt() -> str | None:
        return None

    provider = StoredCredentialProvider(store, prompt=prompt)

    assert asyncio.run(provider.get_credential()) is None
    assert store.load() is None


def test_no_prompt_and_nothing_stored_yields_none(monkeypatch):
    monkeypatch.delenv(GEMINI_API_KEY_ENV, raising=False)
    provider = StoredCredentialProvider(InMemoryApiKeyStore())

    assert asyncio.run(provider.get_credential()) is None


def test_custom_environment_variable_is_honoured(monkeypatch):
    monkeypatch.delenv(GEMINI_API_KEY_ENV, raising=False)
    monkeypatch.setenv("MY_GEMINI_KEY", "  from-custom-env ")
    provider = StoredCredentialProvider(InMemoryApiKeyStore(), env_var="MY_GEMINI_KEY")

    assert asyncio.run(provider.get_credential()) == "from-custom-env"
