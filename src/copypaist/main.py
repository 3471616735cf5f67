"""
main.py — copy-paist Entry Point

Usage:
    copypaist                               # main menu in the current directory
    copypaist refactor                      # jump straight into a command
    copypaist -d path/to/project            # work on another project directory
    copypaist --log-level DEBUG             # verbose file logging
    copypaist --config path/to/config.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from copypaist import __version__

_COMMAND_CHOICES = ["refactor", "generate", "explain"]


def _find_env_file(start: Path) -> Optional[Path]:
    """Nearest .env walking upward from `start`."""
    for directory in (start, *start.parents):
        candidate = directory / ".env"
        if candidate.is_file():
            return candidate
    return None


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="copypaist",
        description="copy-paist — AI-assisted refactoring, generation and explanation in your terminal",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=_COMMAND_CHOICES,
        default=None,
        help="Run one command straight away instead of opening the main menu.",
    )
    parser.add_argument(
        "-d", "--dir",
        dest="project_dir",
        default=".",
        help="Project directory to work in (default: current directory)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $COPYPAIST_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    from pydantic import ValidationError

    from copypaist.config.settings import ConfigError, load_settings
    from copypaist.observability.logger import get_logger, setup_logging

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {e['loc'][-1] if e['loc'] else '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (OSError, ValueError, TypeError) as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    # -- Cross-field validation -----------------------------------------------
    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    # CLI --log-level flag overrides config.yaml
    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("copypaist.main")
    return settings, log


async def main(argv: Optional[list[str]] = None) -> int:
    env_file = _find_env_file(Path.cwd())
    if env_file is not None:
        load_dotenv(dotenv_path=env_file)

    args = parse_args(argv)

    project_dir = Path(args.project_dir).expanduser().resolve()
    if not project_dir.is_dir():
        print(f"\n❌  Project directory not found: {project_dir}\n", file=sys.stderr)
        return 1

    settings, log = bootstrap(args)

    from copypaist.commands import CommandContext, run_menu
    from copypaist.gateway import ApiClient, SessionTransport
    from copypaist.interfaces import ConsoleUI
    from copypaist.session import ChangeApplier, SessionController
    from copypaist.workspace import ProjectFiles

    log.info(
        "copypaist.starting",
        version=__version__,
        project_dir=str(project_dir),
        api_url=settings.base_url,
        channel_url=settings.channel_url,
        model=settings.session.model,
    )

    ui = ConsoleUI()
    ui.show_banner(str(project_dir))

    transport = SessionTransport(
        settings.channel_url,
        ready_timeout=settings.session.ready_timeout_seconds,
    )
    try:
        async with transport, ApiClient(
            settings.base_url, timeout=settings.server.request_timeout_seconds
        ) as api:
            files = ProjectFiles(project_dir, settings.project.ignored_paths)
            controller = SessionController(
                transport,
                api,
                files,
                ui,
                applier=ChangeApplier(
                    project_dir,
                    backup_suffix=settings.apply.backup_suffix,
                    staged=settings.apply.staged,
                ),
                round_timeout=settings.session.round_timeout_seconds,
                max_rounds=settings.session.max_rounds,
            )
            ctx = CommandContext(
                ui=ui,
                files=files,
                controller=controller,
                model=settings.session.model,
            )
            await run_menu(ctx, initial=args.command)
    except EOFError:
        log.info("copypaist.input_closed")
        ui.show_info("\nGoodbye! 👋")
        return 0
    except KeyboardInterrupt:
        log.info("copypaist.interrupted")
        ui.show_info("\nGoodbye! 👋")
        return 130

    log.info("copypaist.stopped")
    return 0


def cli() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
