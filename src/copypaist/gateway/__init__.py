"""
gateway/ — Service Connectivity

The socket.io channel the service streams replies over, its event
protocol, and the HTTP client that starts and continues sessions.
"""

from copypaist.gateway.api_client import ApiClient, Operation
from copypaist.gateway.protocol import ChannelMessage, MessageKind
from copypaist.gateway.transport import SessionTransport

__all__ = [
    "ApiClient",
    "Operation",
    "ChannelMessage",
    "MessageKind",
    "SessionTransport",
]
