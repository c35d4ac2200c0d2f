"""
Unit tests for the Socket.IO transport adapter.

A stand-in for `socketio.AsyncClient` records handlers and lets each test
fire them, so no server is needed.
"""

import importlib.util

import pytest
from socketio import exceptions as socketio_exceptions

from adapters.socketio_transport import SocketIOTransport
from core.config import AppSettings
from core.domain.errors import StreamConnectionError
from core.interfaces.transport import ChannelEventKind


class StubSioClient:
    def __init__(self, *, fail_with=None, fire_connect_error=False, emit_error=None):
        self.handlers = {}
        self.fail_with = fail_with
        self.fire_connect_error = fire_connect_error
        self.emit_error = emit_error
        self.connect_urls = []
        self.connect_kwargs = []
        self.emitted = []
        self.disconnected = False

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def connect(self, url, **kwargs):
        self.connect_urls.append(url)
        self.connect_kwargs.append(kwargs)
        if self.fail_with is not None:
            if self.fire_connect_error:
                await self.handlers["connect_error"]("refused")
            raise self.fail_with
        await self.handlers["connect"]()

    async def emit(self, event, data=None):
        if self.emit_error is not None:
            raise self.emit_error
        self.emitted.append((event, data))

    async def disconnect(self):
        self.disconnected = True
        await self.handlers["disconnect"]("client disconnect")


def _transport(client, **settings_kwargs):
    settings = AppSettings(_env_file=None, socket_url="http://stream.local:9002", **settings_kwargs)
    transport = SocketIOTransport(settings, client=client)
    events = []
    transport.attach(events.append)
    return transport, events


class TestSocketIOTransport:
    def test_registers_lifecycle_and_message_handlers(self):
        client = StubSioClient()
        _transport(client)
        assert set(client.handlers) == {"connect", "disconnect", "connect_error", "message"}

    @pytest.mark.asyncio
    async def test_successful_connect_reports_connect(self):
        client = StubSioClient()
        transport, events = _transport(client)

        await transport.connect()

        assert client.connect_urls == ["http://stream.local:9002"]
        assert [e.kind for e in events] == [ChannelEventKind.CONNECT]

    @pytest.mark.asyncio
    async def test_sub_second_connect_timeout_is_passed_through(self):
        client = StubSioClient()
        transport, _ = _transport(client, connect_timeout_seconds=0.5)

        await transport.connect()

        assert client.connect_kwargs[0]["wait_timeout"] == 0.5

    @pytest.mark.asyncio
    async def test_failed_connect_reports_single_error(self):
        client = StubSioClient(
            fail_with=socketio_exceptions.ConnectionError("refused"),
            fire_connect_error=True,
        )
        transport, events = _transport(client)

        await transport.connect()

        assert [e.kind for e in events] == [ChannelEventKind.CONNECT_ERROR]

    @pytest.mark.asyncio
    async def test_failed_connect_without_handler_still_reports(self):
        client = StubSioClient(fail_with=socketio_exceptions.ConnectionError("refused"))
        transport, events = _transport(client)

        await transport.connect()

        assert [e.kind for e in events] == [ChannelEventKind.CONNECT_ERROR]
        assert "refused" in events[0].payload

    @pytest.mark.asyncio
    async def test_messages_and_disconnects_are_forwarded(self):
        client = StubSioClient()
        transport, events = _transport(client)

        await client.handlers["message"]('{"log": "hello"}')
        await transport.disconnect()

        assert [(e.kind, e.payload) for e in events] == [
            (ChannelEventKind.MESSAGE, '{"log": "hello"}'),
            (ChannelEventKind.DISCONNECT, "client disconnect"),
        ]

    @pytest.mark.asyncio
    async def test_detached_transport_drops_events(self):
        client = StubSioClient()
        transport, events = _transport(client)
        transport.detach()

        await client.handlers["message"]('{"log": "late"}')

        assert events == []

    @pytest.mark.asyncio
    async def test_emit_forwards_to_client(self):
        client = StubSioClient()
        transport, _ = _transport(client)

        await transport.emit("subscribe", "logs:abc123")

        assert client.emitted == [("subscribe", "logs:abc123")]

    @pytest.mark.asyncio
    async def test_emit_failure_becomes_stream_connection_error(self):
        client = StubSioClient(emit_error=socketio_exceptions.BadNamespaceError("/ is not connected"))
        transport, _ = _transport(client)

        with pytest.raises(StreamConnectionError):
            await transport.emit("subscribe", "logs:abc123")


class TestAsyncClientBackend:
    def test_aiohttp_backend_is_installed(self):
        # `socketio.AsyncClient` needs aiohttp for its HTTP and WebSocket transports.
        assert importlib.util.find_spec("aiohttp") is not None
