from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from audio_scribe.core.storage.api_keys import ApiKeyStore, mask_api_key

logger = logging.getLogger(__name__)

GEMINI_API_KEY_ENV = "GEMINI_API_KEY"

CredentialPrompt = Callable[[], Awaitable[str | None]]


class CredentialProvider(Protocol):
    async def get_credential(self) -> str | None: ...


@dataclass(frozen=True, slots=True)
class StaticCredentialProvider:
    value: str | None

    async def get_credential(self) -> str | None:
        return self.value or None


@dataclass(slots=True)
class StoredCredentialProvider:
    """Stored key, then the environment, then an interactive prompt whose answer is saved.

    Called once per connect attempt; never retries on its own.
    """

    store: ApiKeyStore
    env_var: str = GEMINI_API_KEY_ENV
    prompt: CredentialPrompt | None = None

    async def get_credential(self) -> str | None:
        stored = await asyncio.to_thread(self.store.load)
        if stored:
            return stored

        env = (os.getenv(self.env_var) or "").strip()
        if env:
            return env

        if self.prompt is None:
            return None

        entered = (await self.prompt() or "").strip()
        if not entered:
            return None

        await asyncio.to_thread(self.store.save, entered)
        logger.info("Stored Gemini API key %s", mask_api_key(entered))
        return entered
