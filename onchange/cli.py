"""
OnChange Command Line Interface.

Watch glob patterns and run a shell command when they change.
Requires Python 3.11+.

Usage:
    onchange "src/**/*.py" -c "pytest -q"
    onchange "dir/**/*.less" -c "echo {event}:{path}" --debounce 0 --throttle 300
"""

import argparse
import asyncio
import signal
import sys

from pydantic import ValidationError

from onchange import __version__
from onchange.controller import WatchController
from onchange.runner.templater import CommandSpec
from onchange.utils.config import WatchSettings, get_settings
from onchange.utils.errors import ConfigurationError, OnChangeError
from onchange.utils.logger import configure_logging, get_logger
from onchange.watcher.file_watcher import FileWatcher

logger = get_logger("onchange.cli")


def _milliseconds(value: str) -> int:
    try:
        ms = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number of milliseconds, got {value!r}")
    if ms < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {ms}")
    return ms


def _seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number of seconds, got {value!r}")
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {seconds}")
    return seconds


def build_parser(defaults: WatchSettings) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Args:
        defaults: Settings supplying the default values

    Returns:
        Configured parser
    """
    parser = argparse.ArgumentParser(
        prog="onchange",
        description="Run a shell command whenever watched files change.",
        epilog="{path} and {event} in the command are replaced by the changed "
        "path and the event name (add, change, unlink, addDir, unlinkDir).",
    )
    parser.add_argument(
        "patterns",
        nargs="+",
        metavar="PATTERN",
        help="Glob pattern of files/directories to watch, e.g. \"src/**/*.js\"",
    )
    parser.add_argument(
        "-c", "--command",
        help="Shell command to run on changes",
    )
    parser.add_argument(
        "-d", "--debounce",
        type=_milliseconds,
        default=defaults.debounce_ms,
        metavar="MS",
        help="Wait this long after the last change before running (default: %(default)s)",
    )
    parser.add_argument(
        "-t", "--throttle",
        type=_milliseconds,
        default=defaults.throttle_ms,
        metavar="MS",
        help="Run at most once per this many milliseconds, 0 to disable (default: %(default)s)",
    )
    parser.add_argument(
        "-i", "--ignore",
        action="append",
        default=list(defaults.ignore_patterns),
        metavar="PATTERN",
        help="Glob pattern of paths to ignore, may be repeated",
    )
    parser.add_argument(
        "--initial",
        action="store_true",
        help="Run the command once at start-up",
    )
    parser.add_argument(
        "-p", "--polling",
        action="store_true",
        help="Poll for changes instead of using OS notifications",
    )
    parser.add_argument(
        "--poll-interval",
        type=_milliseconds,
        default=defaults.poll_interval_ms,
        metavar="MS",
        help="Polling interval when --polling is set (default: %(default)s)",
    )
    parser.add_argument(
        "--grace-period",
        type=_seconds,
        default=defaults.grace_period,
        metavar="SECONDS",
        help="On shutdown, wait this long for a running command before killing it "
        "(default: %(default)s)",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Log every change event")
    verbosity.add_argument("--silent", action="store_true", help="Only log errors")

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def create_controller(args: argparse.Namespace) -> WatchController:
    """
    Build the watch session described by parsed arguments.

    Raises:
        ConfigurationError: If the command is missing or a pattern is malformed
    """
    if not args.command:
        raise ConfigurationError("a command is required (-c/--command)")

    if args.poll_interval == 0:
        raise ConfigurationError("--poll-interval must be positive")

    watcher = FileWatcher(
        args.patterns,
        ignore_patterns=args.ignore,
        polling=args.polling,
        poll_interval_ms=args.poll_interval,
    )
    return WatchController(
        watcher,
        CommandSpec(args.command),
        debounce_ms=args.debounce,
        throttle_ms=args.throttle,
        initial=args.initial,
        grace_period=args.grace_period,
    )


async def serve(controller: WatchController) -> None:
    """Run a session until SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, controller.request_stop)
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on Windows; KeyboardInterrupt still works
            pass
    await controller.run()


def main(argv: list[str] | None = None) -> int:
    """
    Entry point.

    ``--help`` and ``--version`` exit with status 0 from argparse before
    anything else happens.

    Returns:
        0 on a clean shutdown, 1 if the settings are invalid or the
        session could not be set up
    """
    settings_error: ValidationError | None = None
    try:
        defaults = get_settings().watch
    except ValidationError as e:
        # Built-in defaults keep --help and --version working
        settings_error = e
        defaults = WatchSettings.model_construct()
    args = build_parser(defaults).parse_args(argv)

    level = "DEBUG" if args.verbose else "ERROR" if args.silent else None
    if settings_error is not None:
        configure_logging(level=level or "INFO", log_format="console")
        logger.error("invalid_settings", error=str(settings_error))
        return 1
    configure_logging(level=level)

    try:
        controller = create_controller(args)
        asyncio.run(serve(controller))
    except OnChangeError as e:
        logger.error("startup_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
