from __future__ import annotations

from typing import Callable

from audio_scribe.config.settings import AppSettings, CredentialSettings
from audio_scribe.core.audio.capture import AudioCapture, NullAudioCapture, SoundDeviceAudioCapture
from audio_scribe.core.protocol.client import GeminiLiveClient
from audio_scribe.core.session.controller import RecordingSessionController
from audio_scribe.core.storage.api_keys import ApiKeyStore, KeyringApiKeyStore
from audio_scribe.core.storage.credentials import CredentialPrompt, StoredCredentialProvider
from audio_scribe.core.text.sink import TextSink


def create_api_key_store(settings: CredentialSettings) -> ApiKeyStore:
    return KeyringApiKeyStore(service_name=settings.keyring_service)


def create_client_factory(
    settings: AppSettings,
    *,
    api_keys: ApiKeyStore,
    prompt: CredentialPrompt | None = None,
) -> Callable[[], GeminiLiveClient]:
    credentials = StoredCredentialProvider(
        store=api_keys, env_var=settings.credentials.env_var, prompt=prompt
    )

    def _factory() -> GeminiLiveClient:
        return GeminiLiveClient(
            credentials=credentials,
            endpoint=settings.gemini.endpoint,
            model=settings.gemini.model,
            mime_type=settings.audio.mime_type,
            connect_timeout_s=settings.gemini.connect_timeout_s,
            send_timeout_s=settings.gemini.send_timeout_s,
        )

    return _factory


def _parse_device(value: str) -> int | str | None:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return value


def create_audio_capture(settings: AppSettings, *, use_mic: bool = True) -> AudioCapture:
    if not use_mic:
        return NullAudioCapture()
    return SoundDeviceAudioCapture(
        sample_rate_hz=settings.audio.sample_rate_hz,
        channels=settings.audio.channels,
        device=_parse_device(settings.audio.input_device),
        blocksize_ms=settings.audio.blocksize_ms,
    )


def create_controller(
    settings: AppSettings,
    *,
    api_keys: ApiKeyStore,
    sink: TextSink,
    capture: AudioCapture | None = None,
    prompt: CredentialPrompt | None = None,
) -> RecordingSessionController:
    return RecordingSessionController(
        client_factory=create_client_factory(settings, api_keys=api_keys, prompt=prompt),
        capture=capture if capture is not None else create_audio_capture(settings),
        sink=sink,
    )
