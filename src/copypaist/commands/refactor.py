"""
commands/refactor.py — Refactor Command

File + line selection, then a refactor session: analysis, optional file
requests, progress rounds and a confirmed change set.
"""

from __future__ import annotations

from copypaist.commands.base import BACK, MAIN_MENU, CommandContext, conclude, run_session
from copypaist.gateway.api_client import Operation
from copypaist.observability.logger import get_logger

log = get_logger(__name__)


async def run_refactor(ctx: CommandContext) -> str:
    while True:
        ctx.ui.show_heading("🔄 Refactor code")
        file_path = await ctx.ui.select_file(ctx.files, "File to refactor")
        if file_path is None:
            return MAIN_MENU
        selection = await ctx.ui.select_lines(ctx.files, file_path)
        if selection is None:
            continue

        log.info("command.refactor", path=file_path, start=selection.start, end=selection.end)
        request = {
            "code": selection.code,
            "filePath": file_path,
            "projectFilePaths": ctx.files.project_tree(),
            "model": ctx.model,
        }
        outcome = await run_session(ctx, Operation.REFACTOR, request)
        if isinstance(outcome, str):
            return outcome
        nav = await conclude(ctx, outcome)
        if nav != BACK:
            return nav
