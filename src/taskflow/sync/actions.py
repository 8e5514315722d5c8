# src/taskflow/sync/actions.py

from __future__ import annotations

"""
Write path.

Every mutating operation validates first, then writes straight through the
persistence adapter. Nothing here touches the replica: the change shows up
there only after the adapter pushes the next snapshot. Callers must treat
these operations as "requested", not "applied".

Edits of existing entities read the current entity from the replica and
write the whole document back (last writer wins).
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace

from ..core import rules
from ..core.errors import ValidationError
from ..core.models import (
    AssigneeType,
    Group,
    ReportingFrequency,
    Role,
    SystemConfig,
    Task,
    TaskStatus,
    User,
    new_id,
    now_ms,
)
from ..core.ports import PersistenceAdapter
from .replica import LiveReplica

logger = logging.getLogger(__name__)


def _required(value: str | None, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def _members(member_ids: Iterable[str]) -> list[str]:
    members = [m for m in member_ids if m]
    if not members:
        raise ValidationError("a group needs at least one member")
    return members


class Actions:
    def __init__(
        self,
        adapter: PersistenceAdapter,
        replica: LiveReplica,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._adapter = adapter
        self._replica = replica
        self._clock = clock

    # ---- lookups used by edits ----

    def _task(self, task_id: str) -> Task:
        task = rules.find_task(self._replica.tasks, task_id)
        if task is None:
            raise ValidationError(f"unknown task: {task_id}")
        return task

    def _user(self, user_id: str) -> User:
        user = rules.find_user(self._replica.users, user_id)
        if user is None:
            raise ValidationError(f"unknown user: {user_id}")
        return user

    def _group(self, group_id: str) -> Group:
        group = rules.find_group(self._replica.groups, group_id)
        if group is None:
            raise ValidationError(f"unknown group: {group_id}")
        return group

    # ---- users ----

    def setup_admin(self, name: str, email: str, password: str | None = None) -> User:
        """First user of an empty system; always a manager."""
        user = User(
            id=new_id("admin"),
            name=_required(name, "name"),
            email=_required(email, "email"),
            role=Role.MANAGER,
            password=password or None,
        )
        self._adapter.users.put(user)
        logger.info("Admin created id=%s", user.id)
        return user

    def add_user(self, name: str, email: str, password: str, role: Role = Role.EXECUTOR) -> User:
        user = User(
            id=new_id("u"),
            name=_required(name, "name"),
            email=_required(email, "email"),
            password=_required(password, "password"),
            role=Role(role),
        )
        self._adapter.users.put(user)
        logger.info("User added id=%s role=%s", user.id, user.role.value)
        return user

    def update_user(self, user: User) -> User:
        _required(user.name, "name")
        _required(user.email, "email")
        self._adapter.users.put(user)
        return user

    def reset_password(self, user_id: str, new_password: str) -> User:
        user = replace(self._user(user_id), password=_required(new_password, "password"))
        self._adapter.users.put(user)
        logger.info("Password reset for user id=%s", user_id)
        return user

    def delete_user(self, user_id: str) -> None:
        # Tasks still assigned to this id are left alone (dangling references resolve to UNKNOWN).
        self._adapter.users.remove(user_id)
        logger.info("User removed id=%s", user_id)

    # ---- groups ----

    def add_group(self, name: str, member_ids: Iterable[str]) -> Group:
        group = Group(id=new_id("g"), name=_required(name, "name"), member_ids=_members(member_ids))
        self._adapter.groups.put(group)
        logger.info("Group added id=%s members=%d", group.id, len(group.member_ids))
        return group

    def update_group(self, group: Group) -> Group:
        group = replace(
            group, name=_required(group.name, "name"), member_ids=_members(group.member_ids)
        )
        self._adapter.groups.put(group)
        return group

    def set_group_members(self, group_id: str, member_ids: Iterable[str]) -> Group:
        return self.update_group(replace(self._group(group_id), member_ids=list(member_ids)))

    def delete_group(self, group_id: str) -> None:
        self._adapter.groups.remove(group_id)
        logger.info("Group removed id=%s", group_id)

    # ---- tasks ----

    def add_task(
        self,
        *,
        title: str,
        assignee_id: str,
        due_date: int | None,
        assignee_type: AssigneeType = AssigneeType.USER,
        description: str = "",
        estimated_duration: float = 8.0,
        reporting_frequency: ReportingFrequency = ReportingFrequency.DAILY,
        start_date: int | None = None,
    ) -> Task:
        if due_date is None:
            raise ValidationError("dueDate is required")
        estimate = rules.parse_hours(estimated_duration, "estimatedDuration")
        task = Task(
            id=new_id("task"),
            title=_required(title, "title"),
            description=description or "",
            assignee_id=_required(assignee_id, "assigneeId"),
            assignee_type=AssigneeType(assignee_type),
            start_date=self._clock() if start_date is None else int(start_date),
            due_date=int(due_date),
            estimated_duration=estimate,
            status=TaskStatus.PENDING,
            progress=0,
            reporting_frequency=ReportingFrequency(reporting_frequency),
        )
        self._adapter.tasks.put(task)
        logger.info(
            "Task added id=%s assignee=%s:%s", task.id, task.assignee_type.value, task.assignee_id
        )
        return task

    def update_task(self, task: Task) -> Task:
        _required(task.title, "title")
        self._adapter.tasks.put(task)
        return task

    def delete_task(self, task_id: str) -> None:
        self._adapter.tasks.remove(task_id)
        logger.info("Task removed id=%s", task_id)

    def edit_task_status(self, task_id: str, status: TaskStatus) -> Task:
        task = rules.apply_status_change(self._task(task_id), TaskStatus(status))
        self._adapter.tasks.put(task)
        return task

    def edit_task_progress(self, task_id: str, progress: int) -> Task:
        task = rules.apply_progress_change(self._task(task_id), progress)
        self._adapter.tasks.put(task)
        return task

    def submit_progress_report(
        self,
        task_id: str,
        *,
        hours_spent: float,
        comment: str,
        status: TaskStatus | None = None,
        progress: int | None = None,
        attachment_name: str | None = None,
        attachment_data: str | None = None,
    ) -> Task:
        now = self._clock()
        log = rules.make_progress_log(
            now=now,
            hours_spent=hours_spent,
            comment=comment,
            attachment_name=attachment_name,
            attachment_data=attachment_data,
        )
        task = rules.record_progress_report(
            self._task(task_id), log, now=now, status=status, progress=progress
        )
        self._adapter.tasks.put(task)
        logger.info(
            "Progress report task=%s hours=%.1f status=%s progress=%d",
            task_id,
            log.hours_spent,
            task.status.value,
            task.progress,
        )
        return task

    def reply_to_log(self, task_id: str, log_id: str, text: str) -> Task:
        task = rules.reply_to_log(self._task(task_id), log_id, text, now=self._clock())
        self._adapter.tasks.put(task)
        return task

    def add_subtask(self, task_id: str, title: str) -> Task:
        task = rules.add_subtask(self._task(task_id), title)
        self._adapter.tasks.put(task)
        return task

    def toggle_subtask(self, task_id: str, subtask_id: str, done: bool) -> Task:
        task = rules.toggle_subtask(self._task(task_id), subtask_id, done)
        self._adapter.tasks.put(task)
        return task

    def remove_subtask(self, task_id: str, subtask_id: str) -> Task:
        task = rules.remove_subtask(self._task(task_id), subtask_id)
        self._adapter.tasks.put(task)
        return task

    def mark_reminded(self, task: Task, when: int) -> Task:
        out = replace(task, last_reminder_sent_at=when, last_reported_after_reminder=False)
        self._adapter.tasks.put(out)
        return out

    # ---- config ----

    def save_config(self, config: SystemConfig) -> SystemConfig:
        self._adapter.config.put(config)
        logger.info("System config saved (preference=%s)", config.notification_preference.value)
        return config

    def current_config(self) -> SystemConfig:
        """Config as persisted right now (bypasses the replica)."""
        return self._adapter.config.get()

    def update_config(self, **changes) -> SystemConfig:
        """Whole-document write of the current config with `changes` applied."""
        return self.save_config(replace(self.current_config(), **changes))
