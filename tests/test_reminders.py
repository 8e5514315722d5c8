# tests/test_reminders.py

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from taskflow.core.models import AssigneeType, NotificationPreference, TaskStatus, now_ms
from taskflow.core.rules import MS_PER_HOUR
from taskflow.reminders.daily import run_daily_reminders, run_reminder_loop, start_of_local_day

from .fakes import FakeNotifier


@pytest.fixture()
def configured(actions):
    actions.update_config(
        emailjs_service_id="svc",
        emailjs_template_id="tpl",
        emailjs_reminder_template_id="rem",
        emailjs_public_key="pub",
        system_base_url="https://team.example/app",
    )
    return actions


def _overdue_task(actions, assignee_id, **kw):
    # Started two days ago, never reported: past the DAILY window.
    return actions.add_task(
        title="Stale",
        assignee_id=assignee_id,
        due_date=now_ms() + 10 * 24 * MS_PER_HOUR,
        start_date=now_ms() - 48 * MS_PER_HOUR,
        **kw,
    )


def test_start_of_local_day() -> None:
    now = now_ms()
    start = start_of_local_day(now)
    local = datetime.fromtimestamp(start / 1000).astimezone()
    assert (local.hour, local.minute, local.second) == (0, 0, 0)
    assert 0 <= now - start < 25 * MS_PER_HOUR


def test_reminders_go_to_every_recipient_and_mark_task(configured, replica, team) -> None:
    task = _overdue_task(configured, team.devs.id, assignee_type=AssigneeType.GROUP)
    _overdue_task(configured, team.bob.id, reporting_frequency="NONE")
    notifier = FakeNotifier()
    now = now_ms()

    run = run_daily_reminders(replica, configured, notifier, now=now)

    assert (run.tasks, run.sent, run.failed) == (1, 1, 0)
    assert notifier.sent[0].recipient_email == "alice@example.com"
    assert notifier.sent[0].template_id == "rem"
    assert notifier.sent[0].task_link == f"https://team.example/app?taskId={task.id}"

    stored = next(t for t in replica.tasks if t.id == task.id)
    assert stored.last_reminder_sent_at == now
    assert stored.last_reported_after_reminder is False
    assert replica.config.last_auto_reminder_sent_at == now


def test_runs_at_most_once_per_local_day(configured, replica, team) -> None:
    _overdue_task(configured, team.alice.id)
    notifier = FakeNotifier()
    now = now_ms()

    run_daily_reminders(replica, configured, notifier, now=now)
    second = run_daily_reminders(replica, configured, notifier, now=now + 1000)

    assert second.skipped == "already ran today"
    assert len(notifier.sent) == 1


def test_gate_is_persisted_before_sending(configured, replica, team) -> None:
    _overdue_task(configured, team.alice.id)
    now = now_ms()
    seen_gate: list[int | None] = []

    class PeekingNotifier(FakeNotifier):
        def send(self, **kw) -> None:
            seen_gate.append(configured.current_config().last_auto_reminder_sent_at)
            super().send(**kw)

    run_daily_reminders(replica, configured, PeekingNotifier(), now=now)
    assert seen_gate == [now]


def test_skips_without_credentials_or_in_outlook_mode(actions, replica, team) -> None:
    _overdue_task(actions, team.alice.id)
    notifier = FakeNotifier()

    assert run_daily_reminders(replica, actions, notifier).skipped == "credentials incomplete"

    actions.update_config(
        emailjs_service_id="svc",
        emailjs_template_id="tpl",
        emailjs_public_key="pub",
        notification_preference=NotificationPreference.OUTLOOK,
    )
    assert run_daily_reminders(replica, actions, notifier).skipped == "preference is not EMAILJS"
    assert notifier.sent == []
    assert replica.config.last_auto_reminder_sent_at is None


def test_delivery_failures_are_counted_not_raised(configured, replica, team) -> None:
    _overdue_task(configured, team.alice.id)
    notifier = FakeNotifier(fail_for={"alice@example.com"})
    run = run_daily_reminders(replica, configured, notifier)
    assert (run.sent, run.failed) == (0, 1)
    # Still marked: the run happened.
    assert replica.tasks[0].last_reminder_sent_at is not None


def test_completed_tasks_are_not_reminded(configured, replica, team) -> None:
    task = _overdue_task(configured, team.alice.id)
    configured.edit_task_status(task.id, TaskStatus.COMPLETED)
    run = run_daily_reminders(replica, configured, FakeNotifier())
    assert run.tasks == 0


@pytest.mark.asyncio
async def test_reminder_loop_runs_once_and_stops_on_cancel(configured, replica, team) -> None:
    _overdue_task(configured, team.alice.id)
    notifier = FakeNotifier()

    runner = asyncio.create_task(
        run_reminder_loop(replica, configured, notifier, interval_seconds=0.01)
    )
    await asyncio.sleep(0.2)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert len(notifier.sent) == 1
