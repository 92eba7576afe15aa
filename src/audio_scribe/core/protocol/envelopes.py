"""Gemini Live wire envelopes.

Outbound frames are single UTF-8 JSON text frames:

    {"setup": {"model": ..., "generationConfig": {"responseModalities": ["TEXT"]}}}
    {"realtimeInput": {"mediaChunks": [{"data": "<base64>", "mimeType": "audio/pcm"}]}}

The only inbound shape of interest is ``serverContent.modelTurn.parts[0].text``.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, TypeAlias

DEFAULT_MODEL = "models/gemini-2.0-flash-exp"
DEFAULT_MIME_TYPE = "audio/pcm"


@dataclass(frozen=True, slots=True)
class SetupEnvelope:
    model: str = DEFAULT_MODEL
    response_modalities: Sequence[str] = ("TEXT",)

    def to_dict(self) -> dict[str, Any]:
        return {
            "setup": {
                "model": self.model,
                "generationConfig": {"responseModalities": list(self.response_modalities)},
            }
        }


@dataclass(frozen=True, slots=True)
class AudioChunkEnvelope:
    data_b64: str
    mime_type: str = DEFAULT_MIME_TYPE

    @classmethod
    def from_bytes(cls, data: bytes, *, mime_type: str = DEFAULT_MIME_TYPE) -> "AudioChunkEnvelope":
        return cls(data_b64=encode_audio(data), mime_type=mime_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "realtimeInput": {
                "mediaChunks": [{"data": self.data_b64, "mimeType": self.mime_type}],
            }
        }


OutboundEnvelope: TypeAlias = SetupEnvelope | AudioChunkEnvelope


def encode_audio(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def decode_audio(data_b64: str) -> bytes:
    return base64.b64decode(data_b64.encode("ascii"), validate=True)


def encode_frame(envelope: OutboundEnvelope) -> str:
    return json.dumps(envelope.to_dict(), ensure_ascii=False, separators=(",", ":"))


def extract_text(message: Any) -> str | None:
    """Return ``serverContent.modelTurn.parts[0].text`` or None for any other shape."""
    if not isinstance(message, Mapping):
        return None
    server_content = message.get("serverContent")
    if not isinstance(server_content, Mapping):
        return None
    model_turn = server_content.get("modelTurn")
    if not isinstance(model_turn, Mapping):
        return None
    parts = model_turn.get("parts")
    if not isinstance(parts, list) or not parts:
        return None
    first = parts[0]
    if not isinstance(first, Mapping):
        return None
    text = first.get("text")
    if not isinstance(text, str) or not text:
        return None
    return text
