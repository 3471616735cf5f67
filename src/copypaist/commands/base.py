"""
commands/base.py — Shared Command Plumbing

A command gathers its input from the user, runs one session through the
controller and turns the outcome into a navigation result for the menu.

Navigation results:
    BACK       restart the command's own selection step
    MAIN_MENU  return to the main menu
    EXIT       leave the program
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from copypaist.exceptions import ApplyError
from copypaist.gateway.api_client import Operation
from copypaist.interfaces.console import ConsoleUI
from copypaist.observability.logger import get_logger
from copypaist.session.controller import SessionController, SessionOutcome, SessionStatus
from copypaist.workspace.files import ProjectFiles

log = get_logger(__name__)

BACK = "BACK"
MAIN_MENU = "MAIN_MENU"
EXIT = "EXIT"
RETRY = "RETRY"


@dataclass
class CommandContext:
    ui: ConsoleUI
    files: ProjectFiles
    controller: SessionController
    model: str


async def run_session(
    ctx: CommandContext,
    operation: Operation,
    request: dict[str, Any],
) -> Union[SessionOutcome, str]:
    """
    Run a session, offering a retry after each failure.

    Returns the non-failed outcome, or the navigation the user picked
    instead of retrying.
    """
    while True:
        try:
            outcome = await ctx.controller.run(operation, request)
        except ApplyError as exc:
            log.error("command.apply_failed", path=exc.path, applied=exc.applied)
            ctx.ui.show_error(str(exc))
            if exc.applied:
                ctx.ui.show_info(f"Already applied: {', '.join(exc.applied)}")
            return await ctx.ui.ask_navigation()

        if outcome.status is not SessionStatus.FAILED:
            return outcome

        ctx.ui.show_error(outcome.message or "The session failed.")
        if outcome.error_kind is not None and not outcome.error_kind.retryable:
            return await ctx.ui.ask_navigation()
        choice = await ctx.ui.ask_retry()
        if choice != RETRY:
            return choice
        log.info("command.retry", operation=operation.value)


async def conclude(ctx: CommandContext, outcome: SessionOutcome) -> str:
    """Render a finished session and ask where to go next."""
    if outcome.status is SessionStatus.BACK:
        return BACK
    if outcome.status is SessionStatus.MAIN_MENU:
        return MAIN_MENU
    if outcome.applied is not None:
        ctx.ui.show_apply_report(outcome.applied)
    return await ctx.ui.ask_navigation()
