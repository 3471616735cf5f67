"""
session/aggregator.py — Per-Round Response Aggregation

Collects the stream fragments of one round and resolves them into exactly
one ResponseEnvelope when the round's completion frame arrives.

The aggregator is armed before the request that triggers the round is
sent, so no fragment can slip past it. For a start round the session id is
only known once the start request returns: until `bind()` is called,
frames are stashed per session id, and binding replays the bound id's
frames and discards the rest.

Usage:
    with ResponseAggregator(transport, session_id) as round_:
        await api.continue_session(...)
        envelope = await round_.result(timeout=300)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Optional

from copypaist.exceptions import RoundTimeoutError, SessionError
from copypaist.gateway.protocol import ChannelMessage, MessageKind
from copypaist.gateway.transport import SessionTransport
from copypaist.observability.logger import get_logger
from copypaist.session.envelope import ResponseEnvelope, decode

log = get_logger(__name__)


class ResponseAggregator:
    """Buffers one round's fragments and decodes them on completion."""

    def __init__(self, transport: SessionTransport, session_id: Optional[str] = None):
        self._transport = transport
        self._session_id = session_id
        self._chunks: list[str] = []
        self._stash: dict[str, list[ChannelMessage]] = defaultdict(list)
        self._result: Optional[asyncio.Future] = None
        self._subscribed = False

    def __enter__(self) -> "ResponseAggregator":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def open(self) -> None:
        """Reset the buffer and start listening for this round's frames."""
        if self._subscribed:
            return
        self._chunks = []
        self._stash.clear()
        self._result = asyncio.get_running_loop().create_future()
        self._transport.subscribe(MessageKind.STREAM_CHUNK, self._on_chunk)
        self._transport.subscribe(MessageKind.STREAM_COMPLETE, self._on_complete)
        self._subscribed = True

    def close(self) -> None:
        """Stop listening. Safe to call more than once."""
        if not self._subscribed:
            return
        self._transport.unsubscribe(MessageKind.STREAM_CHUNK, self._on_chunk)
        self._transport.unsubscribe(MessageKind.STREAM_COMPLETE, self._on_complete)
        self._subscribed = False
        self._stash.clear()

    def bind(self, session_id: str) -> None:
        """Bind the round to the id the service assigned, replaying early frames."""
        if self._session_id is not None:
            if self._session_id != session_id:
                raise SessionError(
                    f"Round already bound to session {self._session_id}, not {session_id}"
                )
            return
        self._session_id = session_id
        early = self._stash.pop(session_id, [])
        dropped = sum(len(frames) for frames in self._stash.values())
        self._stash.clear()
        if dropped:
            log.debug("aggregator.foreign_frames_dropped", count=dropped)
        for msg in early:
            if msg.kind is MessageKind.STREAM_CHUNK:
                self._on_chunk(msg)
            else:
                self._on_complete(msg)

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def buffer(self) -> str:
        return "".join(self._chunks)

    @property
    def resolved(self) -> bool:
        return self._result is not None and self._result.done()

    async def result(self, timeout: Optional[float] = None) -> ResponseEnvelope:
        """Wait for the round's envelope; RoundTimeoutError after `timeout` seconds."""
        if self._result is None:
            raise SessionError("Aggregator is not open")
        try:
            return await asyncio.wait_for(asyncio.shield(self._result), timeout=timeout)
        except asyncio.TimeoutError:
            self.close()
            log.warning("aggregator.round_timeout", session_id=self._session_id, timeout=timeout)
            raise RoundTimeoutError(self._session_id, timeout or 0) from None

    # ─────────────────────────────────────────────────────────────────────────
    # Frame handlers
    # ─────────────────────────────────────────────────────────────────────────

    def _accepts(self, msg: ChannelMessage) -> bool:
        if self.resolved or not msg.session_id:
            return False
        if self._session_id is None:
            self._stash[msg.session_id].append(msg)
            return False
        return msg.session_id == self._session_id

    def _on_chunk(self, msg: ChannelMessage) -> None:
        if self._accepts(msg):
            self._chunks.append(msg.chunk)

    def _on_complete(self, msg: ChannelMessage) -> None:
        if not self._accepts(msg):
            return
        self.close()
        envelope = decode(self.buffer)
        log.info(
            "aggregator.round_resolved",
            session_id=self._session_id,
            kind=envelope.kind.value,
            wire_type=envelope.wire_type,
            chars=len(self.buffer),
        )
        self._result.set_result(envelope)
