from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

START_TEXT = "Start Recording"
START_TOOLTIP = "Start voice-to-text recording"
STOP_TEXT = "Stop Recording"
STOP_TOOLTIP = "Stop voice-to-text recording"


@dataclass(slots=True)
class RecordingState:
    recording: bool = False

    def is_recording(self) -> bool:
        return self.recording

    def set_recording(self, value: bool) -> None:
        self.recording = bool(value)


@dataclass(slots=True)
class RecordingIndicator:
    """The single status item the host shows; ``render`` receives (text, tooltip)."""

    text: str = START_TEXT
    tooltip: str = START_TOOLTIP
    render: Callable[[str, str], None] | None = None

    def show_idle(self) -> None:
        self._update(START_TEXT, START_TOOLTIP)

    def show_recording(self) -> None:
        self._update(STOP_TEXT, STOP_TOOLTIP)

    def _update(self, text: str, tooltip: str) -> None:
        changed = (text, tooltip) != (self.text, self.tooltip)
        self.text = text
        self.tooltip = tooltip
        if changed and self.render is not None:
            self.render(text, tooltip)
