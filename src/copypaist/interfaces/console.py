"""
interfaces/console.py — Console UI

Rich rendering plus aioconsole async input. Reading input asynchronously
keeps the event loop (and the streaming channel's reader) running while
the user thinks.

ConsoleUI implements the SessionUI surface the session controller needs
at round boundaries, and the selection/navigation prompts the commands use.

Text that comes from the service or the file system is escaped before it is
printed, so square brackets in it are shown as written and never read as
rich markup.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ContextManager, Optional, Sequence, TypeVar

from aioconsole import ainput
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from copypaist.exceptions import FileResolutionError
from copypaist.gateway.api_client import Operation
from copypaist.observability.logger import get_logger
from copypaist.session.applier import ApplyReport
from copypaist.session.controller import Decision
from copypaist.session.envelope import (
    AnalysisPayload,
    CompletePayload,
    ExplanationPayload,
    FileRequestPayload,
    ProgressChange,
    ProgressPayload,
)
from copypaist.workspace.files import ProjectFiles

log = get_logger(__name__)

T = TypeVar("T")
InputFn = Callable[[str], Awaitable[str]]

_SEVERITY_COLOURS = {
    "high": "red",
    "medium": "yellow",
    "low": "blue",
}

_END_OF_TEXT = "."


@dataclass
class LineSelection:
    start: int
    end: int
    code: str


class ConsoleUI:
    """Interactive terminal surface for the menu, the commands and the round loop."""

    def __init__(self, console: Optional[Console] = None, input_fn: Optional[InputFn] = None):
        self.console = console or Console()
        self._input: InputFn = input_fn or ainput

    # ─────────────────────────────────────────────────────────────────────────
    # Primitives
    # ─────────────────────────────────────────────────────────────────────────

    def status(self, message: str) -> ContextManager[Any]:
        return self.console.status(f"[dim cyan]{message}[/]", spinner="dots")

    async def _choose(self, message: str, choices: Sequence[tuple[str, T]], default: int = 1) -> T:
        """Numbered single choice. Re-prompts until a valid number is given."""
        self.console.print(f"\n[bold]{message}[/]")
        for i, (label, _) in enumerate(choices, start=1):
            self.console.print(f"  [cyan]{i}[/]. {label}")
        while True:
            raw = (await self._input(f"Choice [{default}]: ")).strip()
            if not raw:
                return choices[default - 1][1]
            if raw.isdigit() and 1 <= int(raw) <= len(choices):
                return choices[int(raw) - 1][1]
            self.console.print(f"[red]Enter a number between 1 and {len(choices)}.[/]")

    async def ask_yes_no(self, message: str, default: bool = False) -> bool:
        hint = "Y/n" if default else "y/N"
        raw = (await self._input(f"{message} [{hint}] ")).strip().lower()
        if not raw:
            return default
        return raw in ("y", "yes")

    async def ask_prompt(self, message: str) -> str:
        """Multi-line entry, finished by a line containing only '.' or by EOF."""
        self.console.print(f"[bold]{message}[/] [dim](finish with a single '{_END_OF_TEXT}' line)[/]")
        lines: list[str] = []
        while True:
            try:
                line = await self._input("")
            except EOFError:
                break
            if line.strip() == _END_OF_TEXT:
                break
            lines.append(line)
        return "\n".join(lines)

    # ─────────────────────────────────────────────────────────────────────────
    # Menu and navigation
    # ─────────────────────────────────────────────────────────────────────────

    def show_banner(self, project_dir: str) -> None:
        self.console.print(Panel(
            Text("🧠 Copy Paist — AI Coding Assistant", style="bold green"),
            subtitle=project_dir,
            box=box.DOUBLE,
            border_style="green",
        ))

    async def ask_menu(self) -> str:
        return await self._choose("What would you like to do?", [
            ("Generate code", "generate"),
            ("Refactor code", "refactor"),
            ("Explain code", "explain"),
            ("Exit", "exit"),
        ])

    async def ask_navigation(self, message: str = "What would you like to do next?") -> str:
        return await self._choose(message, [
            ("Return to main menu", "MAIN_MENU"),
            ("Exit program", "EXIT"),
        ])

    async def ask_retry(self, message: str = "Would you like to try again?") -> str:
        return await self._choose(message, [
            ("Try again", "RETRY"),
            ("Return to main menu", "MAIN_MENU"),
            ("Exit program", "EXIT"),
        ])

    def show_heading(self, text: str) -> None:
        self.console.print(f"\n[bold green]{text}[/]")

    def show_error(self, message: str) -> None:
        self.console.print(f"[red]❌ {escape(message)}[/]")

    def show_info(self, message: str) -> None:
        self.console.print(f"[blue]{escape(message)}[/]")

    # ─────────────────────────────────────────────────────────────────────────
    # File and line selection
    # ─────────────────────────────────────────────────────────────────────────

    async def select_file(self, files: ProjectFiles, message: str = "File to work on") -> Optional[str]:
        """
        Project-relative path chosen by the user, or None to go back.

        Entering a directory lists what it holds and asks again.
        """
        recent = files.recent_files
        if recent:
            self.console.print("[dim]Recent files:[/]")
            for i, path in enumerate(recent, start=1):
                self.console.print(f"  [cyan]{i}[/]. {escape(path)}")
        while True:
            raw = (await self._input(f"{message} (path{', number' if recent else ''}, empty to go back): ")).strip()
            if not raw:
                return None
            if recent and raw.isdigit() and 1 <= int(raw) <= len(recent):
                return recent[int(raw) - 1]
            try:
                target = files.resolve(raw)
            except FileResolutionError as exc:
                self.show_error(str(exc))
                continue
            if target.is_file():
                rel = files.relative(raw)
                log.debug("console.file_selected", path=rel)
                return rel
            if target.is_dir():
                self._show_listing(files, files.relative(raw))
                continue
            self.show_error(f"{raw} is not a file in {files.root}")

    def _show_listing(self, files: ProjectFiles, rel_dir: str) -> None:
        dirs, entries = files.list_dir(rel_dir)
        self.console.print(f"[dim]Contents of {escape(rel_dir)}/:[/]")
        for path in dirs:
            self.console.print(f"  [blue]{escape(path)}/[/]")
        for path in entries:
            self.console.print(f"  {escape(path)}")
        if not dirs and not entries:
            self.console.print("  [dim](empty)[/]")

    async def select_lines(self, files: ProjectFiles, file_path: str) -> Optional[LineSelection]:
        """A line range of `file_path`, or None to go back to file selection."""
        try:
            code = files.read_file(file_path)
        except FileResolutionError as exc:
            log.warning("console.file_unreadable", path=file_path, error=str(exc))
            self.show_error(str(exc))
            return None
        lines = code.splitlines()
        self.console.print(Syntax(code, _lexer_for(file_path), line_numbers=True, word_wrap=False))
        if not lines:
            return LineSelection(start=0, end=0, code="")

        raw = (await self._input(
            f"Lines to use (e.g. 10-42, empty for all {len(lines)}, 'b' to go back): "
        )).strip().lower()
        while True:
            if raw == "b":
                return None
            if not raw:
                return LineSelection(start=1, end=len(lines), code=code)
            selection = _parse_range(raw, len(lines))
            if selection is not None:
                start, end = selection
                return LineSelection(start=start, end=end, code="\n".join(lines[start - 1:end]))
            self.show_error(f"Enter a range between 1 and {len(lines)}.")
            raw = (await self._input("Lines to use: ")).strip().lower()

    # ─────────────────────────────────────────────────────────────────────────
    # Round boundaries
    # ─────────────────────────────────────────────────────────────────────────

    def show_analysis(self, analysis: AnalysisPayload, operation: Operation) -> None:
        if operation is Operation.GENERATE:
            self.console.print("\n[bold blue]🔍 Understanding your request:[/]")
            self.console.print(escape(analysis.understanding) if analysis.understanding else "[dim]—[/]")
            self.console.print("\n[bold blue]🛠️ Planned approach:[/]")
            self.console.print(escape(analysis.approach) if analysis.approach else "[dim]—[/]")
            return

        self.console.print("\n[bold blue]🔍 Code Analysis:[/]")
        if not analysis.issues:
            self.console.print("  [green]No major issues found in the selected code.[/]")
        else:
            table = Table(box=box.ROUNDED, border_style="dim", show_lines=False)
            table.add_column("Severity", no_wrap=True)
            table.add_column("Issue")
            table.add_column("Location", style="dim")
            for issue in analysis.issues:
                colour = _SEVERITY_COLOURS.get(issue.severity.lower(), "white")
                table.add_row(
                    f"[{colour}]{escape(issue.severity.upper())}[/]",
                    escape(issue.description),
                    escape(issue.location),
                )
            self.console.print(table)

        if analysis.potential_refactorings:
            self.console.print("\n[bold blue]🔄 Potential Refactorings:[/]")
            for i, refactoring in enumerate(analysis.potential_refactorings, start=1):
                self.console.print(f"  {i}. {escape(refactoring)}")

    async def ask_analysis_decision(self, operation: Operation) -> Decision:
        verb = "generation" if operation is Operation.GENERATE else "refactoring"
        return await self._choose("How would you like to proceed?", [
            (f"Continue with {verb}", Decision.CONTINUE),
            ("⬅️ Go back to file selection", Decision.BACK),
            ("Return to main menu", Decision.MAIN_MENU),
        ])

    def show_file_request(self, request: FileRequestPayload) -> None:
        self.console.print("\n[blue]📂 The assistant needs additional files:[/]")
        if request.reason:
            self.console.print(f"  Reason: {escape(request.reason)}")
        for requested in request.requested_files:
            self.console.print(
                f"  [yellow]Fetching: {escape(requested.path)}[/] "
                f"[dim]({escape(requested.reason or 'needed')})[/]"
            )

    def show_file_resolved(self, path: str, found: bool) -> None:
        if found:
            self.console.print(f"  [green]✓ Found file: {escape(path)}[/]")
        else:
            self.console.print(f"  [red]✗ Could not find file: {escape(path)}[/]")

    async def prompt_manual_content(self, path: str) -> str:
        return await self.ask_prompt(f"Please enter the content for {path} manually:")

    def show_progress(self, progress: ProgressPayload) -> None:
        self.console.print(f"\n[bold blue]🔄 Progress: {progress.progress:g}%[/]")
        for i, change in enumerate(progress.changes, start=1):
            where = escape(change.file_path or change.location)
            self.console.print(f"\n[yellow]Change #{i}: {escape(change.type or 'edit')}[/] [dim]at {where}[/]")
            if change.explanation:
                self.console.print(escape(change.explanation))
            diff = render_diff(change)
            if diff:
                self.console.print(Syntax(diff, "diff", word_wrap=True))
        if progress.next_step:
            self.console.print(f"\n[blue]Next step: {escape(progress.next_step)}[/]")

    def show_completion(self, result: CompletePayload, operation: Operation) -> None:
        title = "Generation" if operation is Operation.GENERATE else "Refactoring"
        self.console.print(f"\n[bold green]✅ {title} Complete![/]")
        if result.summary:
            self.console.print("\n[bold]Summary:[/]")
            self.console.print(escape(result.summary))
        for heading, items in (
            ("Improvements", result.improvements),
            ("Testing Recommendations", result.testing_recommendations),
        ):
            if items:
                self.console.print(f"\n[bold]{heading}:[/]")
                for i, item in enumerate(items, start=1):
                    self.console.print(f"  {i}. {escape(item)}")
        if result.changes:
            self.console.print("\n[bold]Files Changed:[/]")
            for change in result.changes:
                self.console.print(f"  - {escape(change.file_path)}")

    async def confirm_changes(self, result: CompletePayload) -> bool:
        return await self._choose("Apply these changes?", [
            ("Apply changes", True),
            ("Discard changes", False),
        ])

    def show_apply_report(self, report: ApplyReport) -> None:
        self.console.print(f"[green]✓ Changes applied to {len(report.written)} file(s).[/]")
        if report.backups:
            self.console.print(f"[dim]  Backups: {escape(', '.join(report.backups))}[/]")

    def show_explanation(self, explanation: ExplanationPayload) -> None:
        self.console.print("\n[bold blue]📚 Explanation:[/]")
        if explanation.summary:
            self.console.print(Panel(Text(explanation.summary), border_style="blue", padding=(0, 2)))
        if explanation.explanation:
            self.console.print(escape(explanation.explanation))
        for point in explanation.key_points:
            self.console.print(f"  • {escape(point)}")


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

_LEXERS = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "jsx",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
    ".cs": "csharp",
}


def _lexer_for(file_path: str) -> str:
    for suffix, lexer in _LEXERS.items():
        if file_path.endswith(suffix):
            return lexer
    return "text"


def _parse_range(raw: str, line_count: int) -> Optional[tuple[int, int]]:
    start_s, sep, end_s = raw.partition("-")
    try:
        start = int(start_s)
        end = int(end_s) if sep else start
    except ValueError:
        return None
    if 1 <= start <= end <= line_count:
        return start, end
    return None


def render_diff(change: ProgressChange) -> str:
    """Unified diff between a progress change's original and new code."""
    if not change.original_code and not change.new_code:
        return ""
    lines = difflib.unified_diff(
        change.original_code.splitlines(),
        change.new_code.splitlines(),
        fromfile="before",
        tofile="after",
        lineterm="",
    )
    return "\n".join(lines)
