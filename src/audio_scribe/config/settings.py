from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from audio_scribe.config.paths import LOG_FILENAME
from audio_scribe.core.protocol.client import DEFAULT_ENDPOINT
from audio_scribe.core.protocol.envelopes import DEFAULT_MIME_TYPE, DEFAULT_MODEL
from audio_scribe.core.storage.api_keys import DEFAULT_KEYRING_SERVICE
from audio_scribe.core.storage.credentials import GEMINI_API_KEY_ENV


@dataclass(slots=True)
class GeminiLiveSettings:
    endpoint: str = DEFAULT_ENDPOINT
    model: str = DEFAULT_MODEL
    connect_timeout_s: float | None = 10.0
    send_timeout_s: float | None = 5.0

    def validate(self) -> None:
        if not self.endpoint:
            raise ValueError("endpoint must be non-empty")
        if not self.endpoint.startswith(("wss://", "ws://")):
            raise ValueError("endpoint must be a ws:// or wss:// URI")
        if not self.model:
            raise ValueError("model must be non-empty")
        if self.connect_timeout_s is not None and self.connect_timeout_s <= 0:
            raise ValueError("connect_timeout_s must be > 0 or null")
        if self.send_timeout_s is not None and self.send_timeout_s <= 0:
            raise ValueError("send_timeout_s must be > 0 or null")


@dataclass(slots=True)
class AudioSettings:
    sample_rate_hz: int = 16000
    channels: int = 1
    mime_type: str = DEFAULT_MIME_TYPE
    blocksize_ms: int = 100
    input_device: str = ""

    def validate(self) -> None:
        if self.sample_rate_hz not in (8000, 16000, 24000):
            raise ValueError("sample_rate_hz must be 8000, 16000 or 24000")
        if self.channels <= 0:
            raise ValueError("channels must be > 0")
        if not self.mime_type:
            raise ValueError("mime_type must be non-empty")
        if self.blocksize_ms <= 0:
            raise ValueError("blocksize_ms must be > 0")
        if self.input_device is None:
            raise ValueError("input_device must be a string")


@dataclass(slots=True)
class CredentialSettings:
    keyring_service: str = DEFAULT_KEYRING_SERVICE
    env_var: str = GEMINI_API_KEY_ENV

    def validate(self) -> None:
        if not self.keyring_service:
            raise ValueError("keyring_service must be non-empty")
        if not self.env_var:
            raise ValueError("env_var must be non-empty")


@dataclass(slots=True)
class LoggingSettings:
    level: str = "INFO"
    file_name: str = LOG_FILENAME
    max_bytes: int = 1_000_000
    backup_count: int = 1

    def validate(self) -> None:
        if not isinstance(logging.getLevelName(self.level.upper()), int):
            raise ValueError(f"unknown log level: {self.level}")
        if self.max_bytes < 0:
            raise ValueError("max_bytes must be >= 0")
        if self.backup_count < 0:
            raise ValueError("backup_count must be >= 0")


@dataclass(slots=True)
class AppSettings:
    gemini: GeminiLiveSettings = field(default_factory=GeminiLiveSettings)
    audio: AudioSettings = field(default_factory=AudioSettings)
    credentials: CredentialSettings = field(default_factory=CredentialSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate(self) -> None:
        self.gemini.validate()
        self.audio.validate()
        self.credentials.validate()
        self.logging.validate()


def to_dict(settings: AppSettings) -> dict[str, Any]:
    return {
        "gemini": {
            "endpoint": settings.gemini.endpoint,
            "model": settings.gemini.model,
            "connect_timeout_s": settings.gemini.connect_timeout_s,
            "send_timeout_s": settings.gemini.send_timeout_s,
        },
        "audio": {
            "sample_rate_hz": settings.audio.sample_rate_hz,
            "channels": settings.audio.channels,
            "mime_type": settings.audio.mime_type,
            "blocksize_ms": settings.audio.blocksize_ms,
            "input_device": settings.audio.input_device,
        },
        "credentials": {
            "keyring_service": settings.credentials.keyring_service,
            "env_var": settings.credentials.env_var,
        },
        "logging": {
            "level": settings.logging.level,
            "file_name": settings.logging.file_name,
            "max_bytes": settings.logging.max_bytes,
            "backup_count": settings.logging.backup_count,
        },
    }


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def from_dict(data: dict[str, Any]) -> AppSettings:
    gemini_data = data.get("gemini") or {}
    audio_data = data.get("audio") or {}
    credentials_data = data.get("credentials") or {}
    logging_data = data.get("logging") or {}

    input_device_raw = audio_data.get("input_device")

    settings = AppSettings(
        gemini=GeminiLiveSettings(
            endpoint=str(gemini_data.get("endpoint", DEFAULT_ENDPOINT)),
            model=str(gemini_data.get("model", DEFAULT_MODEL)),
            connect_timeout_s=_optional_float(gemini_data.get("connect_timeout_s", 10.0)),
            send_timeout_s=_optional_float(gemini_data.get("send_timeout_s", 5.0)),
        ),
        audio=AudioSettings(
            sample_rate_hz=int(audio_data.get("sample_rate_hz", 16000)),
            channels=int(audio_data.get("channels", 1)),
            mime_type=str(audio_data.get("mime_type", DEFAULT_MIME_TYPE)),
            blocksize_ms=int(audio_data.get("blocksize_ms", 100)),
            input_device=str(input_device_raw) if input_device_raw is not None else "",
        ),
        credentials=CredentialSettings(
            keyring_service=str(
                credentials_data.get("keyring_service", DEFAULT_KEYRING_SERVICE)
            ),
            env_var=str(credentials_data.get("env_var", GEMINI_API_KEY_ENV)),
        ),
        logging=LoggingSettings(
            level=str(logging_data.get("level", "INFO")),
            file_name=str(logging_data.get("file_name", LOG_FILENAME)),
            max_bytes=int(logging_data.get("max_bytes", 1_000_000)),
            backup_count=int(logging_data.get("backup_count", 1)),
        ),
    )
    settings.validate()
    return settings


def load_settings(path: Path) -> AppSettings:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("settings file must contain a JSON object")
    return from_dict(raw)


def save_settings(path: Path, settings: AppSettings) -> None:
    settings.validate()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_dict(settings), ensure_ascii=False, indent=2), encoding="utf-8")
