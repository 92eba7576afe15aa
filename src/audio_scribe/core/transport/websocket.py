"""WebSocket transport: one socket, one lifecycle.

DISCONNECTED -> CONNECTING -> OPEN -> CLOSED. A closed transport is never reopened;
callers build a fresh instance to reconnect.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from audio_scribe.core.observers import ObserverList
from audio_scribe.domain.events import CONNECTION_TRANSITIONS, ConnectionState, check_transition
from audio_scribe.errors import ConnectError, DecodeError, NotConnectedError, SendError

logger = logging.getLogger(__name__)

MessageObserver = Callable[[Any], None]
ErrorObserver = Callable[[BaseException], None]
CloseObserver = Callable[[str | None], None]
Connector = Callable[[str], Awaitable[Any]]


class Transport(Protocol):
    @property
    def state(self) -> ConnectionState: ...
    @property
    def is_connected(self) -> bool: ...
    async def connect(self, uri: str) -> None: ...
    async def disconnect(self) -> None: ...
    async def send(self, frame: str | bytes) -> None: ...
    def on_message(self, observer: MessageObserver) -> None: ...
    def on_error(self, observer: ErrorObserver) -> None: ...
    def on_close(self, observer: CloseObserver) -> None: ...


async def websockets_connector(uri: str) -> Any:
    import websockets

    # open_timeout is enforced by the transport itself.
    return await websockets.connect(uri, open_timeout=None, max_size=None)


def describe_close(exc: BaseException) -> str | None:
    """Close code and reason sent by the remote, e.g. ``"API key not valid (code 1007)"``."""
    rcvd = getattr(exc, "rcvd", None)
    if rcvd is None:
        return None
    if rcvd.reason:
        return f"{rcvd.reason} (code {int(rcvd.code)})"
    return f"code {int(rcvd.code)}"


def decode_message(raw: str | bytes) -> Any:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"frame is not valid UTF-8: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"frame is not valid JSON: {exc}") from exc


@dataclass(slots=True)
class WebSocketTransport:
    connector: Connector = websockets_connector
    connect_timeout_s: float | None = 10.0
    send_timeout_s: float | None = None

    _state: ConnectionState = field(init=False, default=ConnectionState.DISCONNECTED)
    _ws: Any = field(init=False, default=None, repr=False)
    _recv_task: asyncio.Task[None] | None = field(init=False, default=None, repr=False)
    _message_observers: ObserverList = field(init=False, repr=False)
    _error_observers: ObserverList = field(init=False, repr=False)
    _close_observers: ObserverList = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.connect_timeout_s is not None and self.connect_timeout_s <= 0:
            raise ValueError("connect_timeout_s must be > 0 or None")
        if self.send_timeout_s is not None and self.send_timeout_s <= 0:
            raise ValueError("send_timeout_s must be > 0 or None")
        self._message_observers = ObserverList("message")
        self._error_observers = ObserverList("error")
        self._close_observers = ObserverList("close")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.OPEN

    def on_message(self, observer: MessageObserver) -> None:
        self._message_observers.add(observer)

    def on_error(self, observer: ErrorObserver) -> None:
        self._error_observers.add(observer)

    def on_close(self, observer: CloseObserver) -> None:
        self._close_observers.add(observer)

    async def connect(self, uri: str) -> None:
        if self._state != ConnectionState.DISCONNECTED:
            raise RuntimeError(f"transport cannot connect from state {self._state.value}")
        self._set_state(ConnectionState.CONNECTING)

        try:
            if self.connect_timeout_s is None:
                ws = await self.connector(uri)
            else:
                ws = await asyncio.wait_for(self.connector(uri), timeout=self.connect_timeout_s)
        except asyncio.CancelledError:
            self._set_state(ConnectionState.CLOSED)
            raise
        except asyncio.TimeoutError as exc:
            self._set_state(ConnectionState.CLOSED)
            error = ConnectError(f"WebSocket connection timed out after {self.connect_timeout_s}s")
            self._error_observers.notify(error)
            raise error from exc
        except Exception as exc:
            self._set_state(ConnectionState.CLOSED)
            logger.error("WebSocket error: %s", exc)
            error = ConnectError(f"WebSocket connection failed: {exc}")
            self._error_observers.notify(error)
            raise error from exc

        self._ws = ws
        self._set_state(ConnectionState.OPEN)
        logger.info("WebSocket connection established")
        self._recv_task = asyncio.create_task(self._recv_loop(ws), name="audio-scribe-ws-recv")

    async def disconnect(self) -> None:
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSED):
            return
        self._set_state(ConnectionState.CLOSED)

        task, self._recv_task = self._recv_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as exc:
                logger.debug("WebSocket close failed: %s", exc)
        logger.info("WebSocket connection closed")

    async def send(self, frame: str | bytes) -> None:
        if self._state != ConnectionState.OPEN or self._ws is None:
            raise NotConnectedError()
        try:
            if self.send_timeout_s is None:
                await self._ws.send(frame)
            else:
                await asyncio.wait_for(self._ws.send(frame), timeout=self.send_timeout_s)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = SendError(f"WebSocket send failed: {exc}")
            self._error_observers.notify(error)
            raise error from exc

    async def _recv_loop(self, ws: Any) -> None:
        from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

        reason: str | None = None
        try:
            while True:
                raw = await ws.recv()
                self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosedOK as exc:
            reason = describe_close(exc)
            logger.info("WebSocket closed by remote (%s)", reason or "no reason")
        except ConnectionClosed as exc:
            reason = describe_close(exc)
            logger.warning("WebSocket connection lost: %s", reason or exc)
            self._error_observers.notify(exc)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            logger.exception("WebSocket receive loop error")
            self._error_observers.notify(exc)

        if self._state == ConnectionState.OPEN:
            self._set_state(ConnectionState.CLOSED)
            self._ws = None
            with contextlib.suppress(Exception):
                await ws.close()
            self._close_observers.notify(reason)

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = decode_message(raw)
        except DecodeError as exc:
            logger.error("Error parsing message: %s", exc)
            return
        self._message_observers.notify(message)

    def _set_state(self, target: ConnectionState) -> None:
        check_transition(CONNECTION_TRANSITIONS, self._state, target)
        self._state = target
