from __future__ import annotations

import asyncio
import getpass
import logging
import sys
from dataclasses import dataclass, field
from typing import TextIO

from audio_scribe.app.commands import StreamNotifier, ToggleRecordingCommand
from audio_scribe.app.wiring import create_api_key_store, create_audio_capture, create_controller
from audio_scribe.config.settings import AppSettings
from audio_scribe.core.recording.state import RecordingIndicator
from audio_scribe.core.session.controller import RecordingSessionController
from audio_scribe.core.text.sink import StreamTextSink

logger = logging.getLogger(__name__)

QUIT_COMMANDS = frozenset({"q", "quit", "exit"})


async def prompt_for_api_key() -> str | None:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, getpass.getpass, "Enter your Gemini API key: ")
    except EOFError:
        return None


@dataclass(slots=True)
class HeadlessRecorderRunner:
    """Console host: each Enter toggles recording, ``q`` quits; text goes to stdout."""

    settings: AppSettings
    use_mic: bool = True
    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    controller: RecordingSessionController | None = None

    async def run(self) -> int:
        if self.controller is None:
            self.controller = create_controller(
                self.settings,
                api_keys=create_api_key_store(self.settings.credentials),
                sink=StreamTextSink(self.stdout),
                capture=create_audio_capture(self.settings, use_mic=self.use_mic),
                prompt=prompt_for_api_key,
            )
        logger.info("Headless recorder ready (microphone %s)", "on" if self.use_mic else "off")

        indicator = RecordingIndicator(render=self._render_indicator)
        toggle = ToggleRecordingCommand(
            controller=self.controller,
            indicator=indicator,
            notifier=StreamNotifier(self.stderr),
        )

        self._render_indicator(indicator.text, indicator.tooltip)
        try:
            await self._stdin_loop(toggle)
        except KeyboardInterrupt:
            return 0
        finally:
            await self.controller.aclose()

        return 0

    async def _stdin_loop(self, toggle: ToggleRecordingCommand) -> None:
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, self.stdin.readline)
            if not line:
                return
            if line.strip().lower() in QUIT_COMMANDS:
                return
            await toggle()

    def _render_indicator(self, text: str, tooltip: str) -> None:
        print(f"[{text}] {tooltip} (press Enter to toggle, q to quit)", file=self.stderr, flush=True)
