"""copy-paist — AI coding assistant that refactors, generates and explains code."""

__version__ = "0.1.0"
