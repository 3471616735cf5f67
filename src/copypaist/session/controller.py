"""
session/controller.py — Session Round Loop

Drives one logical session from its start request to a terminal outcome:

    START ──► ANALYSIS ──CONTINUE──► (next round)
                 │ BACK / MAIN_MENU ──► abandoned
          ──► REQUEST_FILES ──► (next round with the requested files)
          ──► PROGRESS ──► (next round, automatically)
          ──► COMPLETE ──► confirm + apply ──► done
          ──► ERROR ──► failed

Every continuation goes to the session id the service assigned at START.
Exactly one round is in flight at a time, and a continuation is only sent
once the previous round's envelope has been classified. The loop is
bounded by `max_rounds`; readiness and each round are bounded by timeouts.
Failures within a round come back as a FAILED outcome; only ApplyError
from the final apply step propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ContextManager, Optional, Protocol, Union

from copypaist.exceptions import (
    ApiError,
    ConnectivityError,
    FileResolutionError,
    RoundLimitError,
    RoundTimeoutError,
)
from copypaist.gateway.api_client import ApiClient, Operation
from copypaist.gateway.transport import SessionTransport
from copypaist.observability.logger import bind_session, clear_session, get_logger
from copypaist.session.aggregator import ResponseAggregator
from copypaist.session.applier import ApplyReport, ChangeApplier
from copypaist.session.envelope import (
    AnalysisPayload,
    CompletePayload,
    EnvelopeKind,
    ErrorKind,
    ExplanationPayload,
    FileRequestPayload,
    ProgressPayload,
    ResponseEnvelope,
)

log = get_logger(__name__)


class Decision(str, Enum):
    """What the user wants after seeing an analysis."""
    CONTINUE  = "CONTINUE"
    BACK      = "BACK"
    MAIN_MENU = "MAIN_MENU"


class SessionStatus(str, Enum):
    COMPLETED = "completed"
    EXPLAINED = "explained"
    FAILED    = "failed"
    BACK      = "back"
    MAIN_MENU = "main_menu"


@dataclass
class SessionOutcome:
    status: SessionStatus
    session_id: Optional[str] = None
    envelope: Optional[ResponseEnvelope] = None
    rounds: int = 0
    applied: Optional[ApplyReport] = None

    @property
    def message(self) -> Optional[str]:
        return self.envelope.message if self.envelope else None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.envelope.error_kind if self.envelope else None

    @classmethod
    def failed(cls, error_kind: ErrorKind, message: str, session_id: Optional[str] = None,
               rounds: int = 0) -> "SessionOutcome":
        return cls(
            status=SessionStatus.FAILED,
            session_id=session_id,
            envelope=ResponseEnvelope.error(message, error_kind),
            rounds=rounds,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Collaborators
# ─────────────────────────────────────────────────────────────────────────────

class SessionUI(Protocol):
    """The interactive surface the controller needs at round boundaries."""

    def status(self, message: str) -> ContextManager[Any]: ...

    def show_analysis(self, analysis: AnalysisPayload, operation: Operation) -> None: ...

    async def ask_analysis_decision(self, operation: Operation) -> Decision: ...

    def show_file_request(self, request: FileRequestPayload) -> None: ...

    def show_file_resolved(self, path: str, found: bool) -> None: ...

    async def prompt_manual_content(self, path: str) -> str: ...

    def show_progress(self, progress: ProgressPayload) -> None: ...

    def show_completion(self, result: CompletePayload, operation: Operation) -> None: ...

    async def confirm_changes(self, result: CompletePayload) -> bool: ...


class FileSource(Protocol):
    def read_file(self, file_path: str) -> str: ...


# ─────────────────────────────────────────────────────────────────────────────
# Controller
# ─────────────────────────────────────────────────────────────────────────────

_Next = Union[SessionOutcome, dict[str, str]]


class SessionController:
    """Runs the round loop of one session at a time over a shared transport."""

    def __init__(
        self,
        transport: SessionTransport,
        api: ApiClient,
        files: FileSource,
        ui: SessionUI,
        *,
        applier: Optional[ChangeApplier] = None,
        round_timeout: float = 300.0,
        max_rounds: int = 25,
    ):
        self._transport = transport
        self._api = api
        self._files = files
        self._ui = ui
        self._applier = applier
        self._round_timeout = round_timeout
        self._max_rounds = max_rounds

    async def run(self, operation: Operation, request: dict[str, Any]) -> SessionOutcome:
        """Start a session and drive it to a terminal outcome."""
        session_id: Optional[str] = None
        rounds = 0
        try:
            envelope, session_id = await self._start(operation, request)
            rounds = 1
            while True:
                step = await self._step(operation, envelope)
                if isinstance(step, SessionOutcome):
                    step.session_id = session_id
                    step.rounds = rounds
                    log.info("controller.session_finished", status=step.status.value, rounds=rounds)
                    return step
                if rounds >= self._max_rounds:
                    raise RoundLimitError(session_id, self._max_rounds)
                envelope = await self._continue(operation, session_id, step)
                rounds += 1
        except ConnectivityError as exc:
            return SessionOutcome.failed(ErrorKind.CONNECTIVITY, str(exc), session_id, rounds)
        except RoundTimeoutError as exc:
            return SessionOutcome.failed(ErrorKind.TIMEOUT, str(exc), session_id, rounds)
        except RoundLimitError as exc:
            log.warning("controller.round_limit", max_rounds=self._max_rounds)
            return SessionOutcome.failed(ErrorKind.ROUND_LIMIT, str(exc), session_id, rounds)
        except ApiError as exc:
            return SessionOutcome.failed(ErrorKind.API, str(exc), session_id, rounds)
        finally:
            clear_session()

    # ─────────────────────────────────────────────────────────────────────────
    # Rounds
    # ─────────────────────────────────────────────────────────────────────────

    async def _start(self, operation: Operation, request: dict[str, Any]) -> tuple[ResponseEnvelope, str]:
        with self._ui.status("Connecting to the assistant..."):
            await self._transport.ready()
        sender_id = self._transport.identity()

        with ResponseAggregator(self._transport) as round_:
            session_id = await self._api.start_session(operation, request, sender_id)
            round_.bind(session_id)
            bind_session(session_id, operation.value)
            log.info("controller.round_start", round=1)
            envelope = await self._await(round_, "Waiting for the assistant...")
        return envelope, session_id

    async def _continue(
        self,
        operation: Operation,
        session_id: str,
        file_contents: dict[str, str],
    ) -> ResponseEnvelope:
        await self._transport.ready()
        with ResponseAggregator(self._transport, session_id) as round_:
            log.info("controller.round_continue", files=sorted(file_contents))
            await self._api.continue_session(
                operation, session_id, file_contents, self._transport.identity()
            )
            return await self._await(round_, "Processing next step...")

    async def _await(self, round_: ResponseAggregator, message: str) -> ResponseEnvelope:
        with self._ui.status(message):
            return await round_.result(timeout=self._round_timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # State machine
    # ─────────────────────────────────────────────────────────────────────────

    async def _step(self, operation: Operation, envelope: ResponseEnvelope) -> _Next:
        """Act on one envelope: either a terminal outcome or the files for the next round."""
        kind = envelope.kind

        if kind is EnvelopeKind.ERROR:
            log.warning("controller.session_error", error_kind=envelope.error_kind, message=envelope.message)
            return SessionOutcome(status=SessionStatus.FAILED, envelope=envelope)

        if not operation.continuable:
            # explain sessions answer in a single round
            return SessionOutcome(status=SessionStatus.EXPLAINED, envelope=envelope)

        if kind is EnvelopeKind.ANALYSIS:
            self._ui.show_analysis(envelope.payload, operation)
            decision = await self._ui.ask_analysis_decision(operation)
            log.info("controller.analysis_decision", decision=decision.value)
            if decision is Decision.BACK:
                return SessionOutcome(status=SessionStatus.BACK, envelope=envelope)
            if decision is Decision.MAIN_MENU:
                return SessionOutcome(status=SessionStatus.MAIN_MENU, envelope=envelope)
            return {}

        if kind is EnvelopeKind.REQUEST_FILES:
            return await self._resolve_files(envelope.payload)

        if kind is EnvelopeKind.PROGRESS:
            self._ui.show_progress(envelope.payload)
            return {}

        if kind is EnvelopeKind.COMPLETE:
            return await self._complete(operation, envelope)

        # EXPLANATION outside an explain session carries nothing to act on
        return SessionOutcome(status=SessionStatus.EXPLAINED, envelope=envelope)

    async def _resolve_files(self, request: FileRequestPayload) -> dict[str, str]:
        self._ui.show_file_request(request)
        contents: dict[str, str] = {}
        for requested in request.requested_files:
            try:
                contents[requested.path] = self._files.read_file(requested.path)
                self._ui.show_file_resolved(requested.path, True)
            except FileResolutionError as exc:
                log.info("controller.file_fallback", path=requested.path, reason=str(exc))
                self._ui.show_file_resolved(requested.path, False)
                contents[requested.path] = await self._ui.prompt_manual_content(requested.path)
        return contents

    async def _complete(self, operation: Operation, envelope: ResponseEnvelope) -> SessionOutcome:
        result: CompletePayload = envelope.payload
        self._ui.show_completion(result, operation)
        outcome = SessionOutcome(status=SessionStatus.COMPLETED, envelope=envelope)
        if self._applier is None or not result.changes:
            return outcome
        if await self._ui.confirm_changes(result):
            with self._ui.status("Applying changes..."):
                outcome.applied = self._applier.apply(result.changes)
        return outcome


def explanation_of(outcome: SessionOutcome) -> Optional[ExplanationPayload]:
    """The explanation carried by an explain outcome, coerced when the service used another kind."""
    if outcome.envelope is None or outcome.status is not SessionStatus.EXPLAINED:
        return None
    payload = outcome.envelope.payload
    if isinstance(payload, ExplanationPayload):
        return payload
    return ExplanationPayload.model_validate(outcome.envelope.data)

