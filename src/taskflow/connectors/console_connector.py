# src/taskflow/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..session.controller import Phase

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _prompt(state: AppState) -> str:
    user = state.session.current_user
    return f">>> {user.name}: " if user else ">>> (guest): "


def _greeting(state: AppState) -> str:
    phase = state.session.phase
    if phase == Phase.SETUP:
        return "No users yet. Create the administrator with /setup <name> <email> [password]."
    if phase == Phase.LOGIN:
        return "Log in with /login (no arguments lists users)."
    return "Use /tasks to see your tasks."


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    app_name = str(getattr(getattr(state, "settings", None), "app_name", "taskflow"))

    if not state.replica.wait_ready(timeout=10.0):
        logger.warning("Tasks snapshot not live after 10s; continuing with what has arrived.")

    _print_ts(f"[{app_name}] Use /help for commands. Use /exit to quit.")
    _print_ts(_greeting(state))

    def emit(text: str) -> None:
        # Immediate user-visible feedback for multi-step operations (save, then notify).
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(_prompt(state)).strip()
            _rewrite_prev_line(f"[{_ts_local()}] {_prompt(state)}{user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            with state.lock:
                response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        _print_ts(response)

    logger.info("Console connector finished.")
