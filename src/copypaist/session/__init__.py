"""
session/ — Streaming Session Protocol

Round aggregation, envelope classification, the round-loop controller and
the change applier that materialises a completed session.
"""

from copypaist.session.aggregator import ResponseAggregator
from copypaist.session.applier import ApplyReport, ChangeApplier
from copypaist.session.controller import (
    Decision,
    SessionController,
    SessionOutcome,
    SessionStatus,
)
from copypaist.session.envelope import EnvelopeKind, ErrorKind, ResponseEnvelope, decode

__all__ = [
    "ResponseAggregator",
    "ApplyReport",
    "ChangeApplier",
    "Decision",
    "SessionController",
    "SessionOutcome",
    "SessionStatus",
    "EnvelopeKind",
    "ErrorKind",
    "ResponseEnvelope",
    "decode",
]
