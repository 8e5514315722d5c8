# src/taskflow/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the daily reminder loop in a background thread (optional),
- the console REPL in the main thread.

An optional first argument is the address the app was opened with; a
`taskId` parameter in it opens that task once the user is logged in.
"""

from __future__ import annotations

import argparse
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..reminders.background import ReminderBackgroundRunner, start_reminders_in_background

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="taskflow", description="Team task assignment and progress tracking.")
    parser.add_argument(
        "address",
        nargs="?",
        default="",
        help="Link the app was opened with, e.g. 'https://host/app?taskId=task-123'.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/taskflow")
    setup_logging(log_dir=log_dir, app_name=settings.app_name, console_level=console_level)

    logger.info("Starting %s (backend=%s)...", settings.app_name, settings.backend)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings, address=args.address)

    reminders: ReminderBackgroundRunner | None = start_reminders_in_background(state)

    try:
        run_console_loop(state)
    finally:
        if reminders is not None:
            reminders.stop()
            reminders.join(timeout=10.0)

        shutdown_state(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
