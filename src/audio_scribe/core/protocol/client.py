from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence
from urllib.parse import urlencode

from audio_scribe.core.observers import ObserverList
from audio_scribe.core.protocol.envelopes import (
    DEFAULT_MIME_TYPE,
    DEFAULT_MODEL,
    AudioChunkEnvelope,
    OutboundEnvelope,
    SetupEnvelope,
    encode_frame,
    extract_text,
)
from audio_scribe.core.storage.credentials import CredentialProvider, StaticCredentialProvider
from audio_scribe.core.transport.websocket import Transport, WebSocketTransport
from audio_scribe.errors import ConnectError, MissingCredentialError, NotConnectedError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)

TextObserver = Callable[[str], None]
LostObserver = Callable[[str | None], None]


def build_uri(endpoint: str, credential: str) -> str:
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode({'key': credential})}"


@dataclass(slots=True)
class GeminiLiveClient:
    """Gemini Live BidiGenerateContent client.

    ``connect()`` opens a fresh transport and sends the Setup envelope before
    returning, so no audio chunk can ever precede Setup on a connection.
    ``wait_until_ready()`` then waits for the server's answer to Setup; a key the
    server rejects shows up there as a close with a reason.
    """

    credentials: CredentialProvider
    endpoint: str = DEFAULT_ENDPOINT
    model: str = DEFAULT_MODEL
    response_modalities: Sequence[str] = ("TEXT",)
    mime_type: str = DEFAULT_MIME_TYPE
    connect_timeout_s: float | None = 10.0
    send_timeout_s: float | None = 5.0
    transport_factory: Callable[[], Transport] | None = None

    _transport: Transport | None = field(init=False, default=None, repr=False)
    _setup_sent: bool = field(init=False, default=False)
    _ready: asyncio.Event | None = field(init=False, default=None, repr=False)
    _close_reason: str | None = field(init=False, default=None)
    _text_observers: ObserverList = field(init=False, repr=False)
    _lost_observers: ObserverList = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.endpoint:
            raise ValueError("endpoint must be non-empty")
        if not self.model:
            raise ValueError("model must be non-empty")
        self._text_observers = ObserverList("text response")
        self._lost_observers = ObserverList("connection lost")

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_connected and self._setup_sent

    @property
    def close_reason(self) -> str | None:
        return self._close_reason

    def on_text_response(self, observer: TextObserver) -> None:
        self._text_observers.add(observer)

    def on_connection_lost(self, observer: LostObserver) -> None:
        self._lost_observers.add(observer)

    async def connect(self) -> None:
        if self._transport is not None and self._transport.is_connected:
            raise RuntimeError("client is already connected")

        credential = await self.credentials.get_credential()
        if not credential:
            raise MissingCredentialError()

        transport = self._new_transport()
        transport.on_message(self._handle_message)
        transport.on_error(self._handle_transport_error)
        transport.on_close(self._handle_transport_close)
        self._transport = transport
        self._setup_sent = False
        self._ready = asyncio.Event()
        self._close_reason = None

        try:
            await transport.connect(build_uri(self.endpoint, credential))
            await transport.send(
                encode_frame(
                    SetupEnvelope(model=self.model, response_modalities=self.response_modalities)
                )
            )
        except BaseException:
            logger.error("Failed to connect to %s", self.endpoint)
            await self.disconnect()
            raise

        self._setup_sent = True
        logger.info("Gemini Live session set up (model=%s)", self.model)

    async def disconnect(self) -> None:
        transport, self._transport = self._transport, None
        self._setup_sent = False
        if transport is None:
            return
        try:
            await transport.disconnect()
        except Exception:
            logger.exception("Error closing Gemini Live connection")

    async def send_audio_chunk(self, data: bytes) -> None:
        if not self.is_connected:
            raise NotConnectedError()
        await self._send(AudioChunkEnvelope.from_bytes(data, mime_type=self.mime_type))

    async def wait_until_ready(self, timeout_s: float | None = None) -> None:
        """Wait for the first server frame after Setup (normally ``setupComplete``).

        Raises ``ConnectError`` carrying the close reason when the server closes the
        connection instead, or when nothing arrives within ``timeout_s``.
        """
        if self._ready is None:
            raise NotConnectedError()
        try:
            if timeout_s is None:
                await self._ready.wait()
            else:
                await asyncio.wait_for(self._ready.wait(), timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            raise ConnectError(f"No reply to setup within {timeout_s}s") from exc
        if not self.is_connected:
            raise ConnectError(
                f"Connection closed by server: {self._close_reason or 'no reason given'}"
            )

    async def _send(self, envelope: OutboundEnvelope) -> None:
        assert self._transport is not None
        await self._transport.send(encode_frame(envelope))

    def _new_transport(self) -> Transport:
        if self.transport_factory is not None:
            return self.transport_factory()
        return WebSocketTransport(
            connect_timeout_s=self.connect_timeout_s,
            send_timeout_s=self.send_timeout_s,
        )

    def _handle_message(self, message: Any) -> None:
        if self._ready is not None:
            self._ready.set()
        text = extract_text(message)
        if text is None:
            return
        self._text_observers.notify(text)

    def _handle_transport_error(self, error: BaseException) -> None:
        logger.warning("Gemini Live transport error: %s", error)

    def _handle_transport_close(self, reason: str | None) -> None:
        self._setup_sent = False
        self._close_reason = reason
        if self._ready is not None:
            self._ready.set()
        logger.warning("Gemini Live connection closed by server: %s", reason or "no reason given")
        self._lost_observers.notify(reason)

    @staticmethod
    async def verify_api_key(
        api_key: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        connect_timeout_s: float = 5.0,
    ) -> bool:
        """True once the server answers Setup; raises when it rejects or never answers."""
        if not api_key:
            return False

        client = GeminiLiveClient(
            credentials=StaticCredentialProvider(api_key),
            endpoint=endpoint,
            model=model,
            connect_timeout_s=connect_timeout_s,
        )
        try:
            await client.connect()
            await client.wait_until_ready(timeout_s=connect_timeout_s)
        finally:
            await client.disconnect()
        return True
