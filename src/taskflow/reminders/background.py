# src/taskflow/reminders/background.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from .daily import run_reminder_loop

logger = logging.getLogger(__name__)


@dataclass
class ReminderBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal reminder stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _run_until_stopped(state: AppState, stop_event: asyncio.Event) -> None:
    if state.notifier is None:
        return
    loop_task = asyncio.create_task(
        run_reminder_loop(
            state.replica,
            state.actions,
            state.notifier,
            interval_seconds=float(state.settings.reminder_interval_seconds),
            base_url=str(getattr(state.settings, "default_base_url", "")),
        )
    )
    await stop_event.wait()
    loop_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await loop_task
    logger.info("Reminder loop stopped.")


def start_reminders_in_background(state: AppState) -> ReminderBackgroundRunner | None:
    """
    Run the reminder loop on its own event loop in a daemon thread.

    The console REPL blocks on input(), so the loop cannot share its thread.
    """
    if not getattr(state.settings, "reminders_enabled", False):
        logger.info("Daily reminders disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_until_stopped(state, stop_event))
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="taskflow-reminders", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Reminder thread did not initialize properly.")
        return None

    logger.info("Reminder background thread started.")
    return ReminderBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
