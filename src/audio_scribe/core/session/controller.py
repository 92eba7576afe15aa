from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from audio_scribe.core.audio.capture import AudioCapture
from audio_scribe.core.observers import ObserverList
from audio_scribe.core.text.sink import TextSink
from audio_scribe.domain.events import SESSION_TRANSITIONS, SessionState, check_transition
from audio_scribe.errors import NotConnectedError

logger = logging.getLogger(__name__)


class LiveClient(Protocol):
    @property
    def is_connected(self) -> bool: ...
    async def connect(self) -> None: ...
    async def disconnect(self) -> None: ...
    async def send_audio_chunk(self, data: bytes) -> None: ...
    def on_text_response(self, observer: Callable[[str], None]) -> None: ...
    def on_connection_lost(self, observer: Callable[[str | None], None]) -> None: ...


@dataclass(slots=True)
class RecordingSession:
    client: LiveClient
    pump_task: asyncio.Task[None] | None = None
    lost: bool = False
    lost_reason: str | None = None


@dataclass(slots=True)
class RecordingSessionController:
    """Owns the single recording session of the process.

    IDLE -> STARTING -> RUNNING -> STOPPING -> IDLE. A failed start rolls back to IDLE
    after disconnecting, and the error propagates to the caller. Stop steps are
    best-effort: each failure is logged and the next step still runs.
    """

    client_factory: Callable[[], LiveClient]
    capture: AudioCapture
    sink: TextSink

    _state: SessionState = field(init=False, default=SessionState.IDLE)
    _session: RecordingSession | None = field(init=False, default=None, repr=False)
    _stop_requested: bool = field(init=False, default=False)
    _state_observers: ObserverList = field(init=False, repr=False)
    _lost_observers: ObserverList = field(init=False, repr=False)
    _background: set[asyncio.Task[None]] = field(init=False, default_factory=set, repr=False)

    def __post_init__(self) -> None:
        self._state_observers = ObserverList("session state")
        self._lost_observers = ObserverList("session connection lost")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SessionState.RUNNING

    @property
    def session(self) -> RecordingSession | None:
        return self._session

    def on_state_change(self, observer: Callable[[SessionState], None]) -> None:
        self._state_observers.add(observer)

    def on_connection_lost(self, observer: Callable[[str | None], None]) -> None:
        """Called once with the close reason when the server ends a started session."""
        self._lost_observers.add(observer)

    async def toggle(self) -> None:
        if self._state == SessionState.IDLE:
            await self.start()
        else:
            await self.stop()

    async def start(self) -> None:
        # Reentrancy guard: must run before the first suspension point.
        if self._state != SessionState.IDLE:
            logger.info("Session already running (state=%s)", self._state.value)
            return
        self._set_state(SessionState.STARTING)
        self._stop_requested = False

        client = self.client_factory()
        session = RecordingSession(client=client)
        capture_started = False
        try:
            client.on_text_response(self._deliver_text)
            client.on_connection_lost(lambda reason: self._on_connection_lost(session, reason))
            await client.connect()
            await self.capture.start()
            capture_started = True
            session.pump_task = asyncio.create_task(
                self._pump_audio(client), name="audio-scribe-audio-pump"
            )
        except BaseException:
            logger.error("Failed to start recording session; rolling back")
            if capture_started:
                await self._best_effort("stop audio capture", self.capture.stop)
            await self._best_effort("disconnect", client.disconnect)
            self._set_state(SessionState.IDLE)
            raise

        self._session = session
        self._set_state(SessionState.RUNNING)
        logger.info("Recording session started")

        if self._stop_requested:
            logger.info("Stop was requested while starting; stopping now")
            await self.stop()
        elif session.lost or not client.is_connected:
            logger.warning("Connection closed while starting; ending recording session")
            self._lost_observers.notify(session.lost_reason)
            await self.stop()

    async def stop(self) -> None:
        if self._state == SessionState.STARTING:
            self._stop_requested = True
            return
        if self._state != SessionState.RUNNING:
            return
        self._set_state(SessionState.STOPPING)

        session, self._session = self._session, None
        try:
            await self._best_effort("stop audio capture", self.capture.stop)
            if session is not None:
                await self._cancel_pump(session)
                await self._best_effort("disconnect", session.client.disconnect)
        finally:
            self._set_state(SessionState.IDLE)
        logger.info("Recording session stopped")

    async def aclose(self) -> None:
        await self.stop()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _deliver_text(self, text: str) -> None:
        try:
            self.sink.insert_text(text)
        except Exception:
            logger.exception("Failed to insert transcribed text")

    async def _pump_audio(self, client: LiveClient) -> None:
        chunks_sent = 0
        try:
            async for chunk in self.capture.chunks():
                await client.send_audio_chunk(chunk)
                chunks_sent += 1
                if chunks_sent == 1:
                    logger.info("First audio chunk sent (%d bytes)", len(chunk))
                elif chunks_sent % 50 == 0:
                    logger.debug("Audio chunks sent: %d", chunks_sent)
        except asyncio.CancelledError:
            raise
        except NotConnectedError:
            logger.warning("Audio pump stopped: connection is no longer open")
        except Exception:
            logger.exception("Audio pump failed")

    def _on_connection_lost(self, session: RecordingSession, reason: str | None) -> None:
        session.lost = True
        session.lost_reason = reason
        # Before RUNNING the start path sees session.lost and stops on its own.
        if self._session is not session or self._state != SessionState.RUNNING:
            return
        logger.warning("Connection lost (%s); ending recording session", reason or "no reason")
        self._lost_observers.notify(reason)
        task = asyncio.get_running_loop().create_task(self.stop())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _cancel_pump(self, session: RecordingSession) -> None:
        task, session.pump_task = session.pump_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _best_effort(self, step: str, action: Callable[[], Awaitable[object]]) -> None:
        try:
            await action()
        except Exception:
            logger.exception("Error during %s", step)

    def _set_state(self, target: SessionState) -> None:
        check_transition(SESSION_TRANSITIONS, self._state, target)
        self._state = target
        self._state_observers.notify(target)
