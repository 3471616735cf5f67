"""
gateway/protocol.py — Streaming Channel Message Protocol

Typed view of the socket.io events the service emits on the real-time
channel. Each event name maps to one MessageKind; the event payload is a
JSON object and events about a session carry `sessionId`.

Inbound events (service → client):
    connect          socket.io handshake done; the socket id is the sender id
    stream-chunk     {"sessionId": "...", "chunk": "..."}
    stream-complete  {"sessionId": "..."}

Any other event name is never subscribed to, so it never reaches a handler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ─────────────────────────────────────────────────────────────────────────────
# Message kinds
# ─────────────────────────────────────────────────────────────────────────────

class MessageKind(str, Enum):
    """All event kinds the channel understands; values are socket.io event names."""

    CONNECTED       = "connect"
    STREAM_CHUNK    = "stream-chunk"
    STREAM_COMPLETE = "stream-complete"


# ─────────────────────────────────────────────────────────────────────────────
# Frame
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class ChannelMessage:
    """One event on the streaming channel."""

    kind: MessageKind
    session_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def chunk(self) -> str:
        value = self.data.get("chunk", "")
        return value if isinstance(value, str) else str(value)

    @property
    def sender_id(self) -> Optional[str]:
        return self.data.get("senderId")

    @classmethod
    def from_event(cls, kind: MessageKind, payload: Any) -> "ChannelMessage":
        """Build a message from a socket.io event payload. Raises ValueError for non-objects."""
        if not isinstance(payload, dict):
            raise ValueError(f"'{kind.value}' payload must be a JSON object, got {type(payload).__name__}")
        session_id = payload.get("sessionId")
        return cls(
            kind=kind,
            session_id=session_id if isinstance(session_id, str) else None,
            data={k: v for k, v in payload.items() if k != "sessionId"},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Factory helpers — service → client events
# ─────────────────────────────────────────────────────────────────────────────

def make_connected(sender_id: str) -> ChannelMessage:
    return ChannelMessage(kind=MessageKind.CONNECTED, data={"senderId": sender_id})


def make_chunk(session_id: str, chunk: str) -> ChannelMessage:
    return ChannelMessage(
        kind=MessageKind.STREAM_CHUNK,
        session_id=session_id,
        data={"chunk": chunk},
    )


def make_complete(session_id: str) -> ChannelMessage:
    return ChannelMessage(kind=MessageKind.STREAM_COMPLETE, session_id=session_id)
