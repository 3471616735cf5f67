"""
commands/generate.py — Generate Command

Optional reference files plus a free-text prompt, then a generation
session. Going back from the analysis restarts the file selection.
"""

from __future__ import annotations

from copypaist.commands.base import BACK, MAIN_MENU, CommandContext, conclude, run_session
from copypaist.exceptions import FileResolutionError
from copypaist.gateway.api_client import Operation
from copypaist.observability.logger import get_logger

log = get_logger(__name__)


async def _select_reference_files(ctx: CommandContext) -> list[dict[str, str]]:
    selected: list[dict[str, str]] = []
    while True:
        file_path = await ctx.ui.select_file(ctx.files, "Reference file to include")
        if file_path is None:
            return selected
        if any(f["path"] == file_path for f in selected):
            ctx.ui.show_info(f"{file_path} is already included.")
            continue
        try:
            content = ctx.files.read_file(file_path)
        except FileResolutionError as exc:
            ctx.ui.show_error(str(exc))
            continue
        selected.append({"path": file_path, "content": content})
        ctx.ui.show_info(f"Included {file_path} ({len(selected)} file(s) selected).")


async def run_generate(ctx: CommandContext) -> str:
    while True:
        ctx.ui.show_heading("✨ Generate code")
        selected_files = []
        if await ctx.ui.ask_yes_no("Include existing files as reference?"):
            selected_files = await _select_reference_files(ctx)

        prompt = (await ctx.ui.ask_prompt("Describe the code you want to generate:")).strip()
        if not prompt:
            ctx.ui.show_error("A prompt is required to generate code.")
            return MAIN_MENU

        log.info("command.generate", reference_files=len(selected_files), prompt_chars=len(prompt))
        request = {
            "prompt": prompt,
            "selectedFiles": selected_files,
            "projectFilePaths": ctx.files.project_tree(),
            "model": ctx.model,
        }
        outcome = await run_session(ctx, Operation.GENERATE, request)
        if isinstance(outcome, str):
            return outcome
        nav = await conclude(ctx, outcome)
        if nav != BACK:
            return nav
