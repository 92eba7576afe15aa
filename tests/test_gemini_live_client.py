from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Callable

import pytest
import websockets

from audio_scribe.core.protocol.client import DEFAULT_ENDPOINT, GeminiLiveClient, build_uri
from audio_scribe.core.storage.credentials import StaticCredentialProvider
from audio_scribe.domain.events import ConnectionState
from audio_scribe.errors import ConnectError, MissingCredentialError, NotConnectedError


class FakeTransport:
    def __init__(
        self,
        *,
        fail_connect: BaseException | None = None,
        fail_send: BaseException | None = None,
    ) -> None:
        self.sent: list[str | bytes] = []
        self.uris: list[str] = []
        self.state = ConnectionState.DISCONNECTED
        self.disconnect_calls = 0
        self.fail_connect = fail_connect
        self.fail_send = fail_send
        self._message: list[Callable[[Any], None]] = []
        self._error: list[Callable[[BaseException], None]] = []
        self._close: list[Callable[[str | None], None]] = []

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.OPEN

    async def connect(self, uri: str) -> None:
        self.uris.append(uri)
        self.state = ConnectionState.CONNECTING
        if self.fail_connect is not None:
            self.state = ConnectionState.CLOSED
            raise self.fail_connect
        self.state = ConnectionState.OPEN

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            self.state = ConnectionState.CLOSED

    async def send(self, frame: str | bytes) -> None:
        if self.state != ConnectionState.OPEN:
            raise NotConnectedError()
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(frame)

    def on_message(self, observer: Callable[[Any], None]) -> None:
        self._message.append(observer)

    def on_error(self, observer: Callable[[BaseException], None]) -> None:
        self._error.append(observer)

    def on_close(self, observer: Callable[[str | None], None]) -> None:
        self._close.append(observer)

    def deliver(self, message: Any) -> None:
        for observer in self._message:
            observer(message)

    def drop(self, reason: str | None = None) -> None:
        self.state = ConnectionState.CLOSED
        for observer in self._close:
            observer(reason)


def _client(transports: list[FakeTransport], *, key: str | None = "test-key", **kwargs):
    def factory() -> FakeTransport:
        transport = FakeTransport(**kwargs)
        transports.append(transport)
        return transport

    return GeminiLiveClient(credentials=StaticCredentialProvider(key), transport_factory=factory)


def _frames(transport: FakeTransport) -> list[dict]:
    return [json.loads(frame) for frame in transport.sent]


def test_build_uri_embeds_key_as_query_parameter():
    assert build_uri("wss://host/path", "abc") == "wss://host/path?key=abc"
    assert build_uri("wss://host/path?alt=1", "a b&c") == "wss://host/path?alt=1&key=a+b%26c"


def test_connect_sends_exactly_one_setup_after_open():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)

        await client.connect()

        assert len(transports) == 1
        transport = transports[0]
        assert transport.uris == [f"{DEFAULT_ENDPOINT}?key=test-key"]
        assert _frames(transport) == [
            {
                "setup": {
                    "model": "models/gemini-2.0-flash-exp",
                    "generationConfig": {"responseModalities": ["TEXT"]},
                }
            }
        ]
        assert client.is_connected

    asyncio.run(run())


def test_missing_credential_fails_before_opening_a_connection():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports, key=None)

        with pytest.raises(MissingCredentialError) as excinfo:
            await client.connect()

        assert "API key not found" in str(excinfo.value)
        assert transports == []
        assert not client.is_connected

    asyncio.run(run())


def test_connect_error_propagates_and_leaves_client_disconnected():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports, fail_connect=ConnectError("handshake rejected"))

        with pytest.raises(ConnectError):
            await client.connect()

        assert not client.is_connected
        assert transports[0].sent == []

        with pytest.raises(NotConnectedError):
            await client.send_audio_chunk(b"\x00\x01")

    asyncio.run(run())


def test_setup_send_failure_closes_the_transport():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports, fail_send=OSError("reset"))

        with pytest.raises(OSError):
            await client.connect()

        assert transports[0].state == ConnectionState.CLOSED
        assert transports[0].disconnect_calls == 1
        assert not client.is_connected

    asyncio.run(run())


def test_audio_chunk_is_base64_and_follows_setup():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.connect()

        await client.send_audio_chunk(b"\x01\x02\x03\x04")
        await client.send_audio_chunk(b"\x05")

        frames = _frames(transports[0])
        assert "setup" in frames[0]
        assert [f["realtimeInput"]["mediaChunks"][0]["data"] for f in frames[1:]] == [
            base64.b64encode(b"\x01\x02\x03\x04").decode("ascii"),
            base64.b64encode(b"\x05").decode("ascii"),
        ]
        assert all(
            f["realtimeInput"]["mediaChunks"][0]["mimeType"] == "audio/pcm" for f in frames[1:]
        )

    asyncio.run(run())


def test_send_audio_chunk_before_connect_raises_not_connected():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)

        with pytest.raises(NotConnectedError):
            await client.send_audio_chunk(b"\x00")
        assert transports == []

    asyncio.run(run())


def test_send_audio_chunk_after_close_raises_not_connected():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.connect()
        await client.disconnect()

        with pytest.raises(NotConnectedError):
            await client.send_audio_chunk(b"\x00")
        assert len(transports[0].sent) == 1

    asyncio.run(run())


def test_disconnect_is_idempotent():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.disconnect()

        await client.connect()
        await client.disconnect()
        await client.disconnect()

        assert transports[0].disconnect_calls == 1

    asyncio.run(run())


def test_reconnect_uses_a_fresh_transport():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.connect()
        await client.disconnect()
        await client.connect()

        assert len(transports) == 2
        assert transports[0].state == ConnectionState.CLOSED
        assert transports[1].state == ConnectionState.OPEN
        assert len(transports[1].sent) == 1

    asyncio.run(run())


def test_text_frame_invokes_each_observer_exactly_once():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        first: list[str] = []
        second: list[str] = []
        client.on_text_response(first.append)
        client.on_text_response(second.append)
        await client.connect()

        transports[0].deliver({"serverContent": {"modelTurn": {"parts": [{"text": "hello"}]}}})

        assert first == ["hello"]
        assert second == ["hello"]

    asyncio.run(run())


def test_non_text_frames_invoke_no_observer():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        seen: list[str] = []
        client.on_text_response(seen.append)
        await client.connect()

        transports[0].deliver({"serverContent": {"modelTurn": {"parts": []}}})
        transports[0].deliver({"setupComplete": {}})
        transports[0].deliver({"serverContent": {"turnComplete": True}})

        assert seen == []
        assert client.is_connected

    asyncio.run(run())


def test_failing_text_observer_does_not_block_later_observers():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        order: list[str] = []

        def _boom(_text: str) -> None:
            order.append("boom")
            raise RuntimeError("observer failure")

        client.on_text_response(_boom)
        client.on_text_response(lambda text: order.append(text))
        await client.connect()

        transports[0].deliver({"serverContent": {"modelTurn": {"parts": [{"text": "hi"}]}}})

        assert order == ["boom", "hi"]

    asyncio.run(run())


def test_connection_lost_observers_fire_and_audio_is_refused():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        lost: list[str | None] = []
        client.on_connection_lost(lost.append)
        await client.connect()

        transports[0].drop("going away (code 1001)")

        assert lost == ["going away (code 1001)"]
        assert client.close_reason == "going away (code 1001)"
        assert not client.is_connected
        with pytest.raises(NotConnectedError):
            await client.send_audio_chunk(b"\x00")

    asyncio.run(run())


def test_verify_api_key_rejects_empty_key():
    async def run():
        assert await GeminiLiveClient.verify_api_key("") is False

    asyncio.run(run())


def test_wait_until_ready_returns_on_setup_complete():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.connect()

        waiter = asyncio.create_task(client.wait_until_ready(timeout_s=1.0))
        await asyncio.sleep(0)
        assert not waiter.done()

        transports[0].deliver({"setupComplete": {}})
        await waiter
        assert client.is_connected

    asyncio.run(run())


def test_wait_until_ready_raises_with_close_reason():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.connect()

        transports[0].drop("API key not valid (code 1007)")

        with pytest.raises(ConnectError) as excinfo:
            await client.wait_until_ready(timeout_s=1.0)
        assert "API key not valid (code 1007)" in str(excinfo.value)

    asyncio.run(run())


def test_wait_until_ready_times_out_without_reply():
    async def run():
        transports: list[FakeTransport] = []
        client = _client(transports)
        await client.connect()

        with pytest.raises(ConnectError) as excinfo:
            await client.wait_until_ready(timeout_s=0.01)
        assert "No reply to setup" in str(excinfo.value)

    asyncio.run(run())


def test_wait_until_ready_before_connect_raises_not_connected():
    async def run():
        client = _client([])
        with pytest.raises(NotConnectedError):
            await client.wait_until_ready(timeout_s=0.01)

    asyncio.run(run())


async def _verify_against_local_server(handler) -> bool:
    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        return await GeminiLiveClient.verify_api_key(
            "AIza-test",
            endpoint=f"ws://127.0.0.1:{port}/ws",
            connect_timeout_s=2.0,
        )


def test_verify_api_key_raises_when_server_rejects_setup():
    received: list[dict] = []

    async def handler(ws, *_args):
        received.append(json.loads(await ws.recv()))
        await ws.close(code=1007, reason="API key not valid. Please pass a valid API key.")

    with pytest.raises(ConnectError) as excinfo:
        asyncio.run(_verify_against_local_server(handler))

    assert "API key not valid" in str(excinfo.value)
    assert "setup" in received[0]


def test_verify_api_key_succeeds_once_server_completes_setup():
    async def handler(ws, *_args):
        await ws.recv()
        await ws.send('{"setupComplete": {}}')
        await ws.wait_closed()

    assert asyncio.run(_verify_against_local_server(handler)) is True
