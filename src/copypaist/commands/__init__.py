"""
commands/ — User Commands

Each command is an async function taking a CommandContext and returning a
navigation result (MAIN_MENU or EXIT); run_menu loops over them.
"""

from copypaist.commands.base import BACK, EXIT, MAIN_MENU, CommandContext
from copypaist.commands.menu import COMMANDS, run_menu

__all__ = ["BACK", "EXIT", "MAIN_MENU", "COMMANDS", "CommandContext", "run_menu"]
