from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Protocol, TextIO

from audio_scribe.core.recording.state import RecordingIndicator, RecordingState
from audio_scribe.core.session.controller import RecordingSessionController
from audio_scribe.domain.events import SessionState

logger = logging.getLogger(__name__)

TOGGLE_RECORDING_COMMAND = "audio-scribe.toggleRecording"


class Notifier(Protocol):
    def info(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...


class LoggingNotifier:
    def info(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)


@dataclass(slots=True)
class StreamNotifier:
    stream: TextIO = field(default_factory=lambda: sys.stderr)

    def info(self, message: str) -> None:
        print(message, file=self.stream, flush=True)

    def error(self, message: str) -> None:
        print(message, file=self.stream, flush=True)


@dataclass(slots=True)
class ToggleRecordingCommand:
    """Start if idle, stop if recording; errors are shown once and swallowed."""

    controller: RecordingSessionController
    state: RecordingState = field(default_factory=RecordingState)
    indicator: RecordingIndicator = field(default_factory=RecordingIndicator)
    notifier: Notifier = field(default_factory=LoggingNotifier)

    def __post_init__(self) -> None:
        # Keep the indicator honest when the session ends on its own (connection lost).
        self.controller.on_state_change(self._on_state_change)
        self.controller.on_connection_lost(self._on_connection_lost)

    async def __call__(self) -> None:
        try:
            if self.state.is_recording():
                await self.controller.stop()
                self.notifier.info("Voice recording stopped")
            else:
                await self.controller.start()
                if self.controller.is_running:
                    self.notifier.info("Voice recording started")
        except Exception as exc:
            self.notifier.error(f"Error: {exc}")
        finally:
            self._render(self.controller.state)

    def _on_connection_lost(self, reason: str | None) -> None:
        self.notifier.error(f"Error: Connection closed by server: {reason or 'no reason given'}")

    def _on_state_change(self, state: SessionState) -> None:
        if state in (SessionState.RUNNING, SessionState.IDLE):
            self._render(state)

    def _render(self, state: SessionState) -> None:
        recording = state == SessionState.RUNNING
        self.state.set_recording(recording)
        if recording:
            self.indicator.show_recording()
        else:
            self.indicator.show_idle()
