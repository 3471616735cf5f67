"""
commands/menu.py — Main Menu Loop

Generate / Refactor / Explain / Exit. Each command returns a navigation
result; the loop keeps going until one of them, or the user, says EXIT.
"""

from __future__ import annotations

from typing import Optional

from copypaist.commands.base import EXIT, CommandContext
from copypaist.commands.explain import run_explain
from copypaist.commands.generate import run_generate
from copypaist.commands.refactor import run_refactor
from copypaist.observability.logger import get_logger

log = get_logger(__name__)

COMMANDS = {
    "refactor": run_refactor,
    "generate": run_generate,
    "explain": run_explain,
}


async def run_menu(ctx: CommandContext, initial: Optional[str] = None) -> None:
    """Run the menu until the user exits. `initial` runs one command first."""
    choice = initial
    while True:
        if choice is None:
            choice = await ctx.ui.ask_menu()
        if choice == "exit":
            break
        log.info("menu.command_selected", command=choice)
        nav = await COMMANDS[choice](ctx)
        if nav == EXIT:
            break
        choice = None
    ctx.ui.show_info("Goodbye! 👋")
    log.info("menu.exit")
