# src/taskflow/reminders/daily.py

from __future__ import annotations

"""
Daily automated reminders.

Once per local calendar day, every task that missed its reporting window
gets a reminder mail to each of its recipients. The once-a-day gate is the
persisted `lastAutoReminderSentAt` field of the shared config: it is written
*before* any mail goes out, so another client starting a run the same day
sees the gate closed and skips.

A polling loop drives the run; cancel the coroutine to stop it.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from ..core import rules
from ..core.errors import NotificationError, TaskflowError
from ..core.models import NotificationPreference, SystemConfig, Task, now_ms
from ..core.ports import Notifier
from ..sync.actions import Actions
from ..sync.replica import LiveReplica

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReminderRun:
    skipped: str | None = None
    tasks: int = 0
    sent: int = 0
    failed: int = 0


def start_of_local_day(now: int) -> int:
    """Epoch millis of local midnight for the day containing `now`."""
    local = datetime.fromtimestamp(now / 1000).astimezone()
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def _gate_closed(config: SystemConfig, now: int) -> str | None:
    if config.notification_preference != NotificationPreference.EMAILJS:
        return "preference is not EMAILJS"
    if not config.has_emailjs_credentials:
        return "credentials incomplete"
    last = config.last_auto_reminder_sent_at
    if last is not None and last >= start_of_local_day(now):
        return "already ran today"
    return None


def reminder_message(task: Task, link: str) -> str:
    return (
        "Hello,\n\n"
        f"Your progress report for \"{task.title}\" is overdue "
        f"(reporting frequency: {task.reporting_frequency.value.lower()}).\n\n"
        f"Current progress: {task.progress}%\n"
        f"Please submit a report here:\n{link}\n"
    )


def run_daily_reminders(
    replica: LiveReplica,
    actions: Actions,
    notifier: Notifier,
    *,
    now: int | None = None,
    base_url: str = "",
) -> ReminderRun:
    """One reminder pass. Delivery failures are counted, never raised."""
    now = now_ms() if now is None else int(now)
    config = actions.current_config()

    reason = _gate_closed(config, now)
    if reason:
        logger.debug("Daily reminders skipped: %s", reason)
        return ReminderRun(skipped=reason)

    # Close the gate first, then confirm our write is the one that stuck.
    actions.update_config(last_auto_reminder_sent_at=now)
    config = actions.current_config()
    if config.last_auto_reminder_sent_at != now:
        logger.info("Daily reminders: another client claimed today's run")
        return ReminderRun(skipped="claimed by another client")

    snap = replica.snapshot()
    overdue = rules.overdue_tasks(snap.tasks, now)
    template_id = config.reminder_template_id
    sent = failed = 0

    for task in overdue:
        link = rules.build_task_link(config.system_base_url or base_url, task.id)
        subject = f"[Report overdue] {task.title}"
        message = reminder_message(task, link)
        for user in rules.recipients_for(task, snap.users, snap.groups):
            try:
                notifier.send(
                    credentials=config,
                    recipient_email=user.email,
                    recipient_name=user.name,
                    subject=subject,
                    message=message,
                    task_link=link,
                    template_id=template_id,
                )
                sent += 1
            except NotificationError as e:
                failed += 1
                logger.warning("Reminder for task %s to %s failed: %s", task.id, user.id, e)
        try:
            actions.mark_reminded(task, now)
        except TaskflowError:
            logger.exception("Failed to mark task %s as reminded", task.id)

    logger.info("Daily reminders: tasks=%d sent=%d failed=%d", len(overdue), sent, failed)
    return ReminderRun(tasks=len(overdue), sent=sent, failed=failed)


async def run_reminder_loop(
    replica: LiveReplica,
    actions: Actions,
    notifier: Notifier,
    *,
    interval_seconds: float = 300.0,
    base_url: str = "",
) -> None:
    """
    Every interval_seconds:
    - wait until the tasks snapshot is live
    - run one reminder pass (a no-op if today's run already happened)

    To stop the loop, cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        if replica.ready:
            try:
                await asyncio.to_thread(
                    run_daily_reminders, replica, actions, notifier, base_url=base_url
                )
            except Exception:
                # Keep the loop alive; the next tick retries (the daily gate prevents duplicates).
                logger.exception("Daily reminder run failed")

        await asyncio.sleep(sleep_s)
