"""
exceptions.py — copy-paist Error Hierarchy

Every layer raises typed subclasses of CopyPaistError, never bare Exception.
Failures internal to a single round (bad payloads, unreadable requested
files) are turned into typed outcomes by the session controller; these
exceptions cover the failures that cross a layer boundary.

Hierarchy:
    CopyPaistError
    ├── TransportError
    │   └── ConnectivityError
    │       └── ReadyTimeoutError
    ├── ApiError
    │   └── SessionStartError
    ├── SessionError
    │   ├── RoundTimeoutError
    │   └── RoundLimitError
    ├── FileResolutionError
    └── ApplyError
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class CopyPaistError(Exception):
    """Base class for all copy-paist exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Channel / HTTP layer
# ─────────────────────────────────────────────────────────────────────────────

class TransportError(CopyPaistError):
    """Base for errors on the real-time channel."""


class ConnectivityError(TransportError):
    """The channel could not be opened or was lost."""


class ReadyTimeoutError(ConnectivityError):
    """The channel did not signal readiness within the allowed time."""

    def __init__(self, timeout: float):
        super().__init__(f"Service channel not ready after {timeout:g}s")
        self.timeout = timeout


class ApiError(CopyPaistError):
    """An HTTP request to the service failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionStartError(ApiError):
    """The start request succeeded but returned no session id."""


# ─────────────────────────────────────────────────────────────────────────────
# Session layer
# ─────────────────────────────────────────────────────────────────────────────

class SessionError(CopyPaistError):
    """Base for round-loop errors."""


class RoundTimeoutError(SessionError):
    """No completion event arrived for a round within the allowed time."""

    def __init__(self, session_id: Optional[str], timeout: float):
        super().__init__(
            f"No response for session {session_id or '<unbound>'} after {timeout:g}s"
        )
        self.session_id = session_id
        self.timeout = timeout


class RoundLimitError(SessionError):
    """The session exceeded its maximum number of rounds."""

    def __init__(self, session_id: str, max_rounds: int):
        super().__init__(
            f"Session {session_id} did not finish within {max_rounds} rounds"
        )
        self.session_id = session_id
        self.max_rounds = max_rounds


# ─────────────────────────────────────────────────────────────────────────────
# File layer
# ─────────────────────────────────────────────────────────────────────────────

class FileResolutionError(CopyPaistError):
    """A requested project file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path


class ApplyError(CopyPaistError):
    """Backing up or writing a file change failed."""

    def __init__(self, path: str, reason: str, applied: Optional[list[str]] = None):
        super().__init__(f"Failed to apply change to {path}: {reason}")
        self.path = path
        self.applied = list(applied or [])
