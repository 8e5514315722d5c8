# src/taskflow/notify/assignment.py

from __future__ import annotations

"""
Assignment and test notifications.

Notification is a follow-up to an already committed task write: delivery
failures are collected into the outcome and logged, never raised.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ..core import rules
from ..core.errors import NotificationError
from ..core.models import Group, NotificationPreference, SystemConfig, Task, User
from ..core.ports import Notifier
from .mailto import build_mailto

logger = logging.getLogger(__name__)

APP_SIGNATURE = "TaskFlow Pro"


@dataclass(slots=True)
class NotificationOutcome:
    link: str
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    # Set in OUTLOOK mode: the user opens it in a mail client and sends by hand.
    mailto: str | None = None


def _fmt_date(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).astimezone().strftime("%Y-%m-%d")


def assignment_subject(task: Task) -> str:
    return f"[Task assigned] {task.title}"


def assignment_message(task: Task, link: str) -> str:
    return (
        "Hello,\n\n"
        "A new task has been assigned to you.\n\n"
        f"Task: {task.title}\n"
        f"Due: {_fmt_date(task.due_date)}\n\n"
        f"Report your progress here:\n{link}\n\n"
        f"{APP_SIGNATURE}"
    )


def notify_assignment(
    task: Task,
    users: Sequence[User],
    groups: Sequence[Group],
    config: SystemConfig,
    notifier: Notifier | None,
    base_url: str,
) -> NotificationOutcome:
    link = rules.build_task_link(config.system_base_url or base_url, task.id)
    recipients = rules.recipients_for(task, users, groups)
    subject = assignment_subject(task)
    message = assignment_message(task, link)
    outcome = NotificationOutcome(link=link)

    if config.notification_preference == NotificationPreference.OUTLOOK or notifier is None:
        outcome.mailto = build_mailto([u.email for u in recipients], subject, message)
        return outcome

    if not recipients:
        logger.info("Task %s has no known recipients; nothing sent", task.id)
        return outcome

    for user in recipients:
        try:
            notifier.send(
                credentials=config,
                recipient_email=user.email,
                recipient_name=user.name,
                subject=subject,
                message=message,
                task_link=link,
            )
        except NotificationError as e:
            logger.warning("Assignment mail for task %s to %s failed: %s", task.id, user.id, e)
            outcome.failed.append(user.email or user.id)
            continue
        outcome.sent.append(user.email)

    logger.info(
        "Assignment notification task=%s sent=%d failed=%d",
        task.id,
        len(outcome.sent),
        len(outcome.failed),
    )
    return outcome


def send_test_message(
    config: SystemConfig,
    notifier: Notifier | None,
    email: str,
    *,
    link: str = "",
) -> str | None:
    """
    OUTLOOK: returns a mailto for a test message.
    EMAILJS: sends one test mail; raises NotificationError on failure.
    """
    if not email or not email.strip():
        raise NotificationError("test recipient e-mail is required")
    email = email.strip()

    if config.notification_preference == NotificationPreference.OUTLOOK:
        body = f"This is a test message.\n\nIf you can read this, manual mail composition works.\n\nRecipient: {email}"
        return build_mailto([email], f"{APP_SIGNATURE} test mail", body)

    if notifier is None:
        raise NotificationError("no mail relay configured")
    notifier.send(
        credentials=config,
        recipient_email=email,
        recipient_name="Test recipient",
        subject=f"{APP_SIGNATURE} test mail",
        message=f"This is a test message from {APP_SIGNATURE}. If you received it, mail delivery is configured correctly.",
        task_link=link or config.system_base_url,
    )
    logger.info("Test mail sent to %s", email)
    return None
