"""
gateway/transport.py — Streaming Session Transport

Owns the single socket.io channel to the service. One transport is
constructed per command run, entered as an async context manager, and
passed by reference to whoever needs it; there is no module-level instance.

The service streams every reply over this channel. Outbound requests go
over HTTP (see api_client.py) and carry `identity()` so the service knows
which socket to stream to.

The channel is opened lazily by `ready()`. When the service drops it, the
next `ready()` opens it again, so a session started after an outage gets
a fresh socket and a fresh identity.

Usage:
    async with SessionTransport("http://localhost:3001") as transport:
        await transport.ready()
        transport.subscribe(MessageKind.STREAM_CHUNK, on_chunk)
        ...
        transport.unsubscribe(MessageKind.STREAM_CHUNK, on_chunk)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Optional

import socketio
from socketio import exceptions as sio_exceptions

from copypaist.exceptions import ConnectivityError, ReadyTimeoutError, TransportError
from copypaist.gateway.protocol import ChannelMessage, MessageKind, make_connected
from copypaist.observability.logger import get_logger

log = get_logger(__name__)

Handler = Callable[[ChannelMessage], None]


class SessionTransport:
    """
    Async socket.io channel with readiness wait and scoped subscriptions.

    Async context manager — disconnects on exit. Connecting happens in
    ready(), never on enter.
    """

    def __init__(
        self,
        url: str,
        *,
        ready_timeout: float = 15.0,
        open_timeout: float = 10.0,
        client: Optional[socketio.AsyncClient] = None,
    ):
        self._url = url
        self._ready_timeout = ready_timeout
        self._open_timeout = open_timeout
        self._connected = asyncio.Event()
        self._sender_id: Optional[str] = None
        self._handlers: dict[MessageKind, list[Handler]] = defaultdict(list)

        # Reconnecting is driven by ready(), not by the client's own loop.
        self._sio = client if client is not None else socketio.AsyncClient(reconnection=False)
        self._sio.on(MessageKind.CONNECTED.value, self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on(MessageKind.STREAM_CHUNK.value, self._on_stream_chunk)
        self._sio.on(MessageKind.STREAM_COMPLETE.value, self._on_stream_complete)

    async def __aenter__(self) -> "SessionTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Connection lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the channel. Raises ConnectivityError when the service is unreachable."""
        try:
            await self._sio.connect(
                self._url,
                transports=["websocket"],
                wait_timeout=self._open_timeout,
            )
        except (sio_exceptions.ConnectionError, OSError, asyncio.TimeoutError) as exc:
            log.warning("transport.connect_failed", url=self._url, error=str(exc))
            raise ConnectivityError(f"Cannot connect to {self._url}: {exc}") from exc
        log.info("transport.opened", url=self._url)

    async def close(self) -> None:
        """Close the channel and drop every subscription."""
        if self._sio.connected:
            await self._sio.disconnect()
        self._connected.clear()
        self._handlers.clear()
        log.info("transport.closed")

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    async def ready(self, timeout: Optional[float] = None) -> None:
        """
        Return once the service has acknowledged the connection.

        Returns immediately when already connected. Otherwise opens the
        channel if it is down and waits for the `connect` event, at most
        `timeout` seconds (the transport's ready_timeout when omitted),
        then raises ReadyTimeoutError.
        """
        if self._connected.is_set():
            return
        wait = self._ready_timeout if timeout is None else timeout
        if not self._sio.connected:
            await self.connect()
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=wait)
        except asyncio.TimeoutError:
            log.warning("transport.ready_timeout", url=self._url, timeout=wait)
            raise ReadyTimeoutError(wait) from None

    def identity(self) -> str:
        """The socket id the service assigned; sent as `senderId`."""
        if not self._sender_id:
            raise TransportError("Channel has no identity yet; await ready() first")
        return self._sender_id

    # ─────────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, kind: MessageKind, handler: Handler) -> None:
        self._handlers[kind].append(handler)

    def unsubscribe(self, kind: MessageKind, handler: Handler) -> None:
        """Remove one registration of `handler`; unknown handlers are ignored."""
        handlers = self._handlers.get(kind)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, kind: MessageKind) -> int:
        return len(self._handlers.get(kind, ()))

    def dispatch(self, msg: ChannelMessage) -> None:
        """Deliver one inbound event to the subscribers of its kind."""
        if msg.kind is MessageKind.CONNECTED:
            self._sender_id = msg.sender_id
            self._connected.set()
            log.info("transport.connected", sender_id=self._sender_id)

        # Handlers may unsubscribe themselves while being called.
        for handler in list(self._handlers.get(msg.kind, ())):
            handler(msg)

    # ─────────────────────────────────────────────────────────────────────────
    # socket.io event handlers
    # ─────────────────────────────────────────────────────────────────────────

    def _on_connect(self) -> None:
        self.dispatch(make_connected(self._sio.get_sid()))

    def _on_disconnect(self, *args: Any) -> None:
        # Newer python-socketio releases pass a reason argument.
        self._connected.clear()
        log.warning("transport.connection_lost", url=self._url, reason=str(args[0]) if args else None)

    def _on_stream_chunk(self, payload: Any) -> None:
        self._receive(MessageKind.STREAM_CHUNK, payload)

    def _on_stream_complete(self, payload: Any) -> None:
        self._receive(MessageKind.STREAM_COMPLETE, payload)

    def _receive(self, kind: MessageKind, payload: Any) -> None:
        try:
            msg = ChannelMessage.from_event(kind, payload)
        except ValueError as exc:
            log.warning("transport.bad_event", kind=kind.value, error=str(exc))
            return
        try:
            self.dispatch(msg)
        except Exception as exc:
            log.error("transport.handler_error", kind=kind.value, error=str(exc), exc_info=True)
