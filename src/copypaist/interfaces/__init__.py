from copypaist.interfaces.console import ConsoleUI, LineSelection

__all__ = ["ConsoleUI", "LineSelection"]
