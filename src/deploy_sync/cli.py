import argparse
import logging
import signal
import sys
from pathlib import Path
from types import FrameType

from rich.console import Console

from .config import Config, parse_time
from .constants import APP_NAME, LOG_FILE
from .sync import SyncInterrupted, SyncLoop, build_context, setup_logging

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the `deploy-sync` command."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Keep a local directory and a Subversion repository in sync: "
            "check out, add, delete and commit on a fixed interval."
        ),
        epilog=(
            "Place options first and separate the positionals with '--' when "
            "the username or password starts with '-', e.g. "
            "deploy-sync --once -- deployer -Xy9 URL PATH"
        ),
    )
    parser.add_argument("username", help="Repository user (empty for anonymous)")
    parser.add_argument(
        "password",
        help="Password for the repository user (see below if it starts with '-')",
    )
    parser.add_argument("url", help="Repository URL")
    parser.add_argument("working_copy", type=Path, help="Local working copy path")
    parser.add_argument(
        "client_kind",
        nargs="?",
        default=None,
        help="Client implementation: 'xml' (default) or any other value for "
        "the plain-text command-line client",
    )
    parser.add_argument(
        "--interval",
        default=None,
        help="Delay between cycles, e.g. 15, '30s', '2m' (default: 15s)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a TOML config file",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help=f"Also log to a rotating file (e.g. {LOG_FILE})",
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single cycle and exit"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every svn command"
    )
    return parser


def _raise_interrupt(signum: int, _frame: FrameType | None) -> None:
    raise SyncInterrupted(f"Received {signal.Signals(signum).name}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the Deploy Sync CLI.

    Args:
        argv (list[str] | None): Arguments without the program name.
                                 Defaults to sys.argv[1:].

    Returns:
        int: 0 after a single cycle, 1 on a startup error, 130 when interrupted.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.load(args.config)
    if args.interval is not None:
        try:
            config.sync.interval = parse_time(args.interval)
        except ValueError as e:
            parser.error(str(e))

    setup_logging(args.log_file, args.verbose, config.limits)

    try:
        context = build_context(
            args.username,
            args.password,
            args.url,
            args.working_copy,
            client_kind=args.client_kind,
            config=config,
        )
    except (ValueError, FileNotFoundError) as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        logger.critical(f"Startup failed: {e}")
        return 1

    console.print(
        f"Using [bold]{context.client.label}[/bold] client: "
        f"[cyan]{context.location.url}[/cyan] -> [cyan]{context.working_copy}[/cyan]"
    )

    signal.signal(signal.SIGTERM, _raise_interrupt)

    loop = SyncLoop(context)
    try:
        loop.run(max_cycles=1 if args.once else None)
    except SyncInterrupted as e:
        logger.error(f"Sync loop stopped: {e}")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
