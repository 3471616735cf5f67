"""
commands/explain.py — Explain Command

File + line selection, then a single-round explain session.
"""

from __future__ import annotations

from copypaist.commands.base import MAIN_MENU, CommandContext, run_session
from copypaist.gateway.api_client import Operation
from copypaist.observability.logger import get_logger
from copypaist.session.controller import explanation_of

log = get_logger(__name__)


async def run_explain(ctx: CommandContext) -> str:
    while True:
        ctx.ui.show_heading("📚 Explain code")
        file_path = await ctx.ui.select_file(ctx.files, "File to explain")
        if file_path is None:
            return MAIN_MENU
        selection = await ctx.ui.select_lines(ctx.files, file_path)
        if selection is None:
            continue

        log.info("command.explain", path=file_path, start=selection.start, end=selection.end)
        outcome = await run_session(ctx, Operation.EXPLAIN, {"code": selection.code, "model": ctx.model})
        if isinstance(outcome, str):
            return outcome

        explanation = explanation_of(outcome)
        if explanation is not None:
            ctx.ui.show_explanation(explanation)
        return await ctx.ui.ask_navigation()
