"""
session/envelope.py — Round Result Envelopes

Every round of a session resolves to exactly one ResponseEnvelope. The
service streams free-form text; the payload is the first fenced block in
it (or the whole text when there is none), parsed as JSON and classified
by its `type` field into a closed set of kinds.

Decoding never raises: unparseable text, a missing or unknown `type`, and
a payload that does not match its kind's schema all come back as an
ERROR envelope carrying a diagnostic.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


# ─────────────────────────────────────────────────────────────────────────────
# Kinds
# ─────────────────────────────────────────────────────────────────────────────

class EnvelopeKind(str, Enum):
    ANALYSIS      = "ANALYSIS"
    REQUEST_FILES = "REQUEST_FILES"
    PROGRESS      = "PROGRESS"
    COMPLETE      = "COMPLETE"
    EXPLANATION   = "EXPLANATION"
    ERROR         = "ERROR"

    @property
    def terminal(self) -> bool:
        return self in (EnvelopeKind.COMPLETE, EnvelopeKind.ERROR)


class ErrorKind(str, Enum):
    DECODE       = "decode"
    REMOTE       = "remote"
    TIMEOUT      = "timeout"
    ROUND_LIMIT  = "round_limit"
    CONNECTIVITY = "connectivity"
    API          = "api"

    @property
    def retryable(self) -> bool:
        return self is not ErrorKind.ROUND_LIMIT


# Wire discriminant → envelope kind
WIRE_TYPES: dict[str, EnvelopeKind] = {
    "ANALYSIS":            EnvelopeKind.ANALYSIS,
    "REQUEST_FILES":       EnvelopeKind.REQUEST_FILES,
    "REFACTOR_PROGRESS":   EnvelopeKind.PROGRESS,
    "GENERATION_PROGRESS": EnvelopeKind.PROGRESS,
    "REFACTOR_COMPLETE":   EnvelopeKind.COMPLETE,
    "GENERATION_COMPLETE": EnvelopeKind.COMPLETE,
    "EXPLANATION":         EnvelopeKind.EXPLANATION,
    "ERROR":               EnvelopeKind.ERROR,
}


# ─────────────────────────────────────────────────────────────────────────────
# Payload schemas (camelCase on the wire)
# ─────────────────────────────────────────────────────────────────────────────

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Issue(_Payload):
    severity: str = "low"
    description: str = ""
    location: str = ""


class AnalysisPayload(_Payload):
    issues: list[Issue] = Field(default_factory=list)
    potential_refactorings: list[str] = Field(default_factory=list, alias="potentialRefactorings")
    # generation sessions describe the request instead of listing issues
    understanding: str = ""
    approach: str = ""


class RequestedFile(_Payload):
    path: str
    reason: str = ""


class FileRequestPayload(_Payload):
    requested_files: list[RequestedFile] = Field(alias="requestedFiles")
    reason: str = ""


class ProgressChange(_Payload):
    type: str = ""
    location: str = ""
    file_path: Optional[str] = Field(default=None, alias="filePath")
    original_code: str = Field(default="", alias="originalCode")
    new_code: str = Field(default="", alias="newCode")
    explanation: str = ""


class ProgressPayload(_Payload):
    progress: float = 0
    changes: list[ProgressChange] = Field(default_factory=list)
    next_step: str = Field(default="", alias="nextStep")


class FileChange(_Payload):
    file_path: str = Field(alias="filePath")
    full_content: str = Field(alias="fullContent")
    change_type: Optional[str] = Field(default=None, alias="changeType")


class CompletePayload(_Payload):
    summary: str = ""
    changes: list[FileChange] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    testing_recommendations: list[str] = Field(default_factory=list, alias="testingRecommendations")


class ExplanationPayload(_Payload):
    summary: str = ""
    explanation: str = ""
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")


class ErrorPayload(_Payload):
    message: str = "Unknown error"


_SCHEMAS: dict[EnvelopeKind, type[_Payload]] = {
    EnvelopeKind.ANALYSIS:      AnalysisPayload,
    EnvelopeKind.REQUEST_FILES: FileRequestPayload,
    EnvelopeKind.PROGRESS:      ProgressPayload,
    EnvelopeKind.COMPLETE:      CompletePayload,
    EnvelopeKind.EXPLANATION:   ExplanationPayload,
    EnvelopeKind.ERROR:         ErrorPayload,
}


# ─────────────────────────────────────────────────────────────────────────────
# Envelope
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RawPayload:
    """A parsed payload before classification: `type` plus the whole object."""
    type: str
    data: dict[str, Any]


@dataclass(frozen=True)
class ResponseEnvelope:
    """The classified result of one round."""

    kind: EnvelopeKind
    wire_type: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    payload: Optional[_Payload] = None
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def terminal(self) -> bool:
        return self.kind.terminal

    @classmethod
    def error(
        cls,
        message: str,
        error_kind: ErrorKind,
        *,
        wire_type: str = "ERROR",
        data: Optional[dict[str, Any]] = None,
    ) -> "ResponseEnvelope":
        return cls(
            kind=EnvelopeKind.ERROR,
            wire_type=wire_type,
            data=data or {},
            payload=ErrorPayload(message=message),
            message=message,
            error_kind=error_kind,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────────────────────

class PayloadDecodeError(ValueError):
    """Payload text could not be turned into a typed object."""


# ``` + optional language tag + newline, CONTENT, newline + ```
_FENCE_RE = re.compile(r"```[^\n`]*\n([\s\S]*?)\n```")


def extract_payload_text(text: str) -> str:
    """Return the content of the first fenced block, or the whole text."""
    match = _FENCE_RE.search(text)
    return match.group(1) if match else text


def parse_payload(text: str) -> RawPayload:
    """Extract, parse and read the discriminant. Raises PayloadDecodeError."""
    try:
        parsed = json.loads(extract_payload_text(text))
    except json.JSONDecodeError as exc:
        raise PayloadDecodeError(f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise PayloadDecodeError(f"expected a JSON object, got {type(parsed).__name__}")
    discriminant = parsed.get("type")
    if not isinstance(discriminant, str) or not discriminant:
        raise PayloadDecodeError("payload has no 'type' field")
    return RawPayload(type=discriminant, data=parsed)


def classify(raw: RawPayload) -> ResponseEnvelope:
    """Validate a raw payload against its kind's schema."""
    kind = WIRE_TYPES.get(raw.type)
    if kind is None:
        return ResponseEnvelope.error(
            f"Failed to parse response: unrecognised response type '{raw.type}'",
            ErrorKind.DECODE,
            wire_type=raw.type,
            data=raw.data,
        )
    try:
        payload = _SCHEMAS[kind].model_validate(raw.data)
    except ValidationError as exc:
        return ResponseEnvelope.error(
            f"Failed to parse response: invalid {raw.type} payload: {exc}",
            ErrorKind.DECODE,
            wire_type=raw.type,
            data=raw.data,
        )

    if kind is EnvelopeKind.ERROR:
        return ResponseEnvelope(
            kind=kind,
            wire_type=raw.type,
            data=raw.data,
            payload=payload,
            message=payload.message,
            error_kind=ErrorKind.REMOTE,
        )
    return ResponseEnvelope(kind=kind, wire_type=raw.type, data=raw.data, payload=payload)


def decode(text: str) -> ResponseEnvelope:
    """Turn accumulated stream text into an envelope. Never raises."""
    try:
        raw = parse_payload(text)
    except PayloadDecodeError as exc:
        return ResponseEnvelope.error(f"Failed to parse response: {exc}", ErrorKind.DECODE)
    return classify(raw)
