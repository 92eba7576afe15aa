from __future__ import annotations


class AudioScribeError(Exception):
    """Base class for errors raised by the recording/transcription core."""


class MissingCredentialError(AudioScribeError, ValueError):
    """No Gemini API key could be obtained for this connect attempt."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "API key not found. Run `audio-scribe set-key` or set GEMINI_API_KEY."
        )


class ConnectError(AudioScribeError, ConnectionError):
    """The WebSocket handshake failed or was rejected by the remote."""


class NotConnectedError(AudioScribeError, RuntimeError):
    """An operation needed an open connection but there was none."""

    def __init__(self, message: str = "WebSocket not connected") -> None:
        super().__init__(message)


class SendError(AudioScribeError, ConnectionError):
    """Writing a frame to an open connection failed."""


class DecodeError(AudioScribeError, ValueError):
    """An inbound frame was not valid JSON. Logged, never surfaced."""
