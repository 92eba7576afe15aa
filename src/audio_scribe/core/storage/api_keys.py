"""Where the Gemini API key lives between runs.

The key is a single user-global setting (``gemini_api_key``). The OS keyring is its
persistent home; ``InMemoryApiKeyStore`` backs tests and throwaway runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

GEMINI_API_KEY = "gemini_api_key"
DEFAULT_KEYRING_SERVICE = "audio-scribe"


class ApiKeyStore(Protocol):
    def load(self) -> str | None: ...
    def save(self, api_key: str) -> None: ...
    def clear(self) -> None: ...


def normalize_api_key(api_key: str | None) -> str:
    api_key = (api_key or "").strip()
    if not api_key:
        raise ValueError("API key must be non-empty")
    return api_key


@dataclass(slots=True)
class InMemoryApiKeyStore:
    api_key: str | None = None

    def load(self) -> str | None:
        return self.api_key or None

    def save(self, api_key: str) -> None:
        self.api_key = normalize_api_key(api_key)

    def clear(self) -> None:
        self.api_key = None


@dataclass(slots=True)
class KeyringApiKeyStore:
    """The key as one keyring entry (``service_name`` / ``gemini_api_key``).

    A missing or broken keyring backend reads as "no key stored", so the
    environment variable and prompt still get their turn. Writes propagate it.
    """

    service_name: str = DEFAULT_KEYRING_SERVICE
    entry: str = GEMINI_API_KEY

    def load(self) -> str | None:
        import keyring
        from keyring.errors import KeyringError

        try:
            return keyring.get_password(self.service_name, self.entry) or None
        except KeyringError as exc:
            logger.warning("Keyring unavailable; ignoring stored API key: %s", exc)
            return None

    def save(self, api_key: str) -> None:
        import keyring

        keyring.set_password(self.service_name, self.entry, normalize_api_key(api_key))

    def clear(self) -> None:
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            keyring.delete_password(self.service_name, self.entry)
        except PasswordDeleteError:
            logger.debug("No stored API key to clear")


def mask_api_key(api_key: str, *, visible: int = 4) -> str:
    """``AIzaSyExample1234`` -> ``AIza****1234``. Short keys are masked entirely."""
    if not api_key:
        return api_key
    if len(api_key) <= visible * 2:
        return "*" * len(api_key)
    return f"{api_key[:visible]}****{api_key[-visible:]}"
