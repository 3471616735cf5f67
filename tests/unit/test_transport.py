"""
tests/unit/test_transport.py — Session Transport Tests

Exercises dispatch, readiness, reconnects and subscriptions without a live
service: the socket.io client is the in-memory `socket_client` fixture.
"""

import asyncio

import pytest

from copypaist.exceptions import ConnectivityError, ReadyTimeoutError, TransportError
from copypaist.gateway.protocol import MessageKind, make_chunk, make_connected
from copypaist.gateway.transport import SessionTransport


@pytest.fixture
def transport(socket_client):
    return SessionTransport("http://localhost:3001", ready_timeout=0.05, client=socket_client)


class TestReadiness:
    @pytest.mark.asyncio
    async def test_ready_connects_lazily(self, transport, socket_client):
        assert socket_client.connect_calls == 0
        await transport.ready()
        assert socket_client.connect_calls == 1
        assert transport.connected
        assert transport.identity() == "sock-1"

    @pytest.mark.asyncio
    async def test_entering_context_does_not_connect(self, socket_client):
        async with SessionTransport("http://localhost:3001", client=socket_client):
            assert socket_client.connect_calls == 0

    @pytest.mark.asyncio
    async def test_ready_times_out_without_acknowledgement(self, transport, socket_client):
        socket_client.acknowledge = False
        with pytest.raises(ReadyTimeoutError) as exc_info:
            await transport.ready()
        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_ready_timeout_is_connectivity_error(self, transport, socket_client):
        socket_client.acknowledge = False
        with pytest.raises(ConnectivityError):
            await transport.ready(timeout=0.01)

    @pytest.mark.asyncio
    async def test_refused_connection_raises_connectivity_error(self, transport, socket_client):
        socket_client.refuse = True
        with pytest.raises(ConnectivityError, match="refused"):
            await transport.ready()
        assert not transport.connected

    @pytest.mark.asyncio
    async def test_ready_returns_once_connected(self, transport, socket_client):
        transport.dispatch(make_connected("sock-9"))
        await asyncio.wait_for(transport.ready(), timeout=1)
        assert socket_client.connect_calls == 0
        assert transport.identity() == "sock-9"

    @pytest.mark.asyncio
    async def test_ready_wakes_on_later_connect(self, transport, socket_client):
        socket_client.acknowledge = False
        waiter = asyncio.create_task(transport.ready(timeout=1))
        await asyncio.sleep(0)
        socket_client.handlers["connect"]()
        await waiter
        assert transport.identity() == "sock-1"

    def test_identity_before_connect_raises(self, transport):
        with pytest.raises(TransportError):
            transport.identity()


class TestReconnect:
    @pytest.mark.asyncio
    async def test_drop_then_ready_reconnects(self, transport, socket_client):
        await transport.ready()
        socket_client.drop()
        assert not transport.connected

        await transport.ready()
        assert socket_client.connect_calls == 2
        assert transport.connected
        assert transport.identity() == "sock-2"

    @pytest.mark.asyncio
    async def test_service_down_at_first_then_back(self, transport, socket_client):
        socket_client.refuse = True
        with pytest.raises(ConnectivityError):
            await transport.ready()

        socket_client.refuse = False
        await transport.ready()
        assert transport.identity() == "sock-2"

    @pytest.mark.asyncio
    async def test_subscriptions_survive_reconnect(self, transport, socket_client):
        seen = []
        transport.subscribe(MessageKind.STREAM_CHUNK, seen.append)
        await transport.ready()
        socket_client.drop()
        await transport.ready()
        socket_client.deliver("stream-chunk", {"sessionId": "s1", "chunk": "abc"})
        assert [m.chunk for m in seen] == ["abc"]


class TestServiceEvents:
    @pytest.mark.asyncio
    async def test_stream_events_reach_subscribers(self, transport, socket_client):
        chunks, completes = [], []
        transport.subscribe(MessageKind.STREAM_CHUNK, chunks.append)
        transport.subscribe(MessageKind.STREAM_COMPLETE, completes.append)
        await transport.ready()

        socket_client.deliver("stream-chunk", {"sessionId": "s1", "chunk": '{"type": '})
        socket_client.deliver("stream-complete", {"sessionId": "s1"})

        assert chunks[0].session_id == "s1"
        assert chunks[0].chunk == '{"type": '
        assert completes[0].session_id == "s1"

    def test_non_object_payload_dropped(self, transport, socket_client):
        seen = []
        transport.subscribe(MessageKind.STREAM_CHUNK, seen.append)
        socket_client.deliver("stream-chunk", "not an object")
        assert seen == []

    def test_failing_handler_does_not_break_delivery_loop(self, transport, socket_client):
        def boom(msg):
            raise RuntimeError("handler failed")

        transport.subscribe(MessageKind.STREAM_COMPLETE, boom)
        socket_client.deliver("stream-complete", {"sessionId": "s1"})


class TestSubscriptions:
    def test_dispatch_reaches_subscribers_of_kind(self, transport):
        seen = []
        transport.subscribe(MessageKind.STREAM_CHUNK, seen.append)
        transport.dispatch(make_chunk("s1", "abc"))
        transport.dispatch(make_connected("sock"))
        assert [m.chunk for m in seen] == ["abc"]

    def test_unsubscribe_stops_delivery(self, transport):
        seen = []
        transport.subscribe(MessageKind.STREAM_CHUNK, seen.append)
        transport.unsubscribe(MessageKind.STREAM_CHUNK, seen.append)
        transport.dispatch(make_chunk("s1", "abc"))
        assert seen == []
        assert transport.handler_count(MessageKind.STREAM_CHUNK) == 0

    def test_unsubscribe_unknown_handler_ignored(self, transport):
        transport.unsubscribe(MessageKind.STREAM_COMPLETE, print)
        assert transport.handler_count(MessageKind.STREAM_COMPLETE) == 0

    def test_handler_may_unsubscribe_itself(self, transport):
        calls = []

        def once(msg):
            calls.append(msg)
            transport.unsubscribe(MessageKind.STREAM_CHUNK, once)

        transport.subscribe(MessageKind.STREAM_CHUNK, once)
        transport.dispatch(make_chunk("s1", "a"))
        transport.dispatch(make_chunk("s1", "b"))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_close_disconnects_and_clears_handlers(self, transport, socket_client):
        transport.subscribe(MessageKind.STREAM_CHUNK, print)
        await transport.ready()
        await transport.close()
        assert transport.handler_count(MessageKind.STREAM_CHUNK) == 0
        assert not transport.connected
        assert not socket_client.connected


class TestSocketClient:
    @pytest.mark.asyncio
    async def test_unreachable_service_raises_connectivity_error(self):
        transport = SessionTransport("http://127.0.0.1:9", ready_timeout=1, open_timeout=1)
        with pytest.raises(ConnectivityError):
            await transport.ready()
