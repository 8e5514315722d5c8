# src/taskflow/core/rules.py

from __future__ import annotations

"""
Domain rules.

Pure, side-effect-free functions over snapshots. Nothing here raises on
inconsistent data: dangling ids resolve to "not visible", "not overdue" or
the UNKNOWN display value. Only explicit user edits (coupling, report,
reply) validate their inputs and raise ValidationError.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from urllib.parse import urlsplit, urlunsplit

from .errors import ValidationError
from .models import (
    MAX_ATTACHMENT_CHARS,
    AssigneeType,
    Group,
    ProgressLog,
    ReportingFrequency,
    SubTask,
    Task,
    TaskStatus,
    User,
    new_id,
)

UNKNOWN = "(unknown)"

MS_PER_HOUR = 3600 * 1000

# MONTHLY is a fixed 30-day window, not calendar-month aware.
REPORT_THRESHOLD_MS: dict[ReportingFrequency, int] = {
    ReportingFrequency.HOURLY: MS_PER_HOUR,
    ReportingFrequency.DAILY: 24 * MS_PER_HOUR,
    ReportingFrequency.WEEKLY: 168 * MS_PER_HOUR,
    ReportingFrequency.MONTHLY: 720 * MS_PER_HOUR,
}


# ---- lookups ----


def find_user(users: Iterable[User], user_id: str | None) -> User | None:
    if not user_id:
        return None
    return next((u for u in users if u.id == user_id), None)


def find_group(groups: Iterable[Group], group_id: str | None) -> Group | None:
    if not group_id:
        return None
    return next((g for g in groups if g.id == group_id), None)


def find_task(tasks: Iterable[Task], task_id: str | None) -> Task | None:
    if not task_id:
        return None
    return next((t for t in tasks if t.id == task_id), None)


def user_name(users: Iterable[User], user_id: str | None) -> str:
    u = find_user(users, user_id)
    return u.name if u else UNKNOWN


def group_name(groups: Iterable[Group], group_id: str | None) -> str:
    g = find_group(groups, group_id)
    return g.name if g else UNKNOWN


def assignee_name(task: Task, users: Iterable[User], groups: Iterable[Group]) -> str:
    if task.assignee_type == AssigneeType.GROUP:
        return group_name(groups, task.assignee_id)
    return user_name(users, task.assignee_id)


# ---- assignment resolution ----


def is_visible_to(task: Task, user: User, groups: Iterable[Group]) -> bool:
    """
    Direct assignment, or membership of the assigned group *now*.

    Membership is evaluated against the passed-in snapshot on every call, so a
    user removed from the group stops seeing the task on the next evaluation.
    """
    if task.assignee_type == AssigneeType.USER:
        return task.assignee_id == user.id
    if task.assignee_type == AssigneeType.GROUP:
        group = find_group(groups, task.assignee_id)
        return group is not None and user.id in group.member_ids
    return False


def tasks_visible_to(tasks: Iterable[Task], user: User, groups: Sequence[Group]) -> list[Task]:
    """Managers see every task; executors only the ones assigned to them or their groups."""
    if user.is_manager:
        return list(tasks)
    return [t for t in tasks if is_visible_to(t, user, groups)]


def recipients_for(task: Task, users: Sequence[User], groups: Iterable[Group]) -> list[User]:
    """Who should hear about a task. Unknown ids are skipped."""
    if task.assignee_type == AssigneeType.USER:
        u = find_user(users, task.assignee_id)
        return [u] if u else []
    group = find_group(groups, task.assignee_id)
    if group is None:
        return []
    out: list[User] = []
    for member_id in group.member_ids:
        u = find_user(users, member_id)
        if u is not None:
            out.append(u)
    return out


# ---- missed-report detection ----


def is_overdue(task: Task, now: int) -> bool:
    """
    True when the time since the last report (or the start date if never
    reported) exceeds the task's reporting-frequency threshold.

    Recomputed on every call; no cached flag is trusted.
    """
    if task.status == TaskStatus.COMPLETED:
        return False
    threshold = REPORT_THRESHOLD_MS.get(task.reporting_frequency)
    if threshold is None:
        return False
    last = task.last_reported_at if task.last_reported_at is not None else task.start_date
    return (now - last) > threshold


def overdue_tasks(tasks: Iterable[Task], now: int) -> list[Task]:
    return [t for t in tasks if is_overdue(t, now)]


# ---- status/progress coupling (applied at the point of a user edit only) ----


def _check_progress(progress: int) -> int:
    try:
        p = int(progress)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"progress must be an integer, got {progress!r}") from e
    if p < 0 or p > 100:
        raise ValidationError(f"progress must be within 0..100, got {p}")
    return p


def apply_status_change(task: Task, status: TaskStatus) -> Task:
    """COMPLETED forces progress to 100; any other status leaves progress alone."""
    if status == TaskStatus.COMPLETED:
        return replace(task, status=status, progress=100)
    return replace(task, status=status)


def apply_progress_change(task: Task, progress: int) -> Task:
    """
    100 forces COMPLETED; lowering below 100 while COMPLETED reverts to
    IN_PROGRESS. Every other combination is accepted as-is.
    """
    p = _check_progress(progress)
    if p == 100:
        return replace(task, progress=p, status=TaskStatus.COMPLETED)
    if task.status == TaskStatus.COMPLETED:
        return replace(task, progress=p, status=TaskStatus.IN_PROGRESS)
    return replace(task, progress=p)


def apply_edit(task: Task, *, status: TaskStatus | None = None, progress: int | None = None) -> Task:
    """Status first, then progress, the same order a report form applies them."""
    out = task
    if status is not None and status != out.status:
        out = apply_status_change(out, status)
    if progress is not None:
        p = _check_progress(progress)
        if p != out.progress:
            out = apply_progress_change(out, p)
    return out


# ---- progress reports ----


def parse_hours(value: object, field: str) -> float:
    """Finite hour count >= 0. NaN and infinity are rejected like negatives."""
    try:
        hours = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be a number, got {value!r}") from e
    if not math.isfinite(hours) or hours < 0:
        raise ValidationError(f"{field} must be a finite number >= 0")
    return hours


def make_progress_log(
    *,
    now: int,
    hours_spent: float,
    comment: str,
    attachment_name: str | None = None,
    attachment_data: str | None = None,
) -> ProgressLog:
    hours = parse_hours(hours_spent, "hoursSpent")
    if not comment or not comment.strip():
        raise ValidationError("comment is required")
    if attachment_data and len(attachment_data) > MAX_ATTACHMENT_CHARS:
        raise ValidationError(
            f"attachment too large ({len(attachment_data)} > {MAX_ATTACHMENT_CHARS} chars)"
        )
    return ProgressLog(
        id=new_id("log"),
        timestamp=now,
        hours_spent=hours,
        comment=comment.strip(),
        attachment_name=attachment_name or None,
        attachment_data=attachment_data or None,
    )


def record_progress_report(
    task: Task,
    log: ProgressLog,
    *,
    now: int,
    status: TaskStatus | None = None,
    progress: int | None = None,
) -> Task:
    """
    Prepend the log (newest first), stamp lastReportedAt, and apply the
    status/progress the executor picked through the coupling rule.
    """
    out = apply_edit(task, status=status, progress=progress)
    after_reminder = out.last_reported_after_reminder
    if out.last_reminder_sent_at is not None:
        after_reminder = True
    return replace(
        out,
        logs=[log, *out.logs],
        last_reported_at=now,
        last_reported_after_reminder=after_reminder,
    )


def reply_to_log(task: Task, log_id: str, text: str, *, now: int) -> Task:
    """Set managerReply/managerReplyAt on one log. Unknown log id leaves the task unchanged."""
    if not text or not text.strip():
        raise ValidationError("reply text is required")
    changed = False
    logs: list[ProgressLog] = []
    for log in task.logs:
        if log.id == log_id:
            log = replace(log, manager_reply=text.strip(), manager_reply_at=now)
            changed = True
        logs.append(log)
    if not changed:
        return task
    return replace(task, logs=logs)


# ---- subtasks (informational, never drive progress) ----


def add_subtask(task: Task, title: str) -> Task:
    if not title or not title.strip():
        raise ValidationError("subtask title is required")
    item = SubTask(id=new_id("sub"), title=title.strip(), is_completed=False)
    return replace(task, subtasks=[*task.subtasks, item])


def toggle_subtask(task: Task, subtask_id: str, done: bool) -> Task:
    return replace(
        task,
        subtasks=[
            replace(s, is_completed=bool(done)) if s.id == subtask_id else s for s in task.subtasks
        ],
    )


def remove_subtask(task: Task, subtask_id: str) -> Task:
    return replace(task, subtasks=[s for s in task.subtasks if s.id != subtask_id])


# ---- aggregation ----


@dataclass(frozen=True, slots=True)
class Workload:
    user_id: str
    name: str
    estimated_hours: float
    actual_hours: float
    task_count: int


def workload(users: Iterable[User], tasks: Sequence[Task]) -> list[Workload]:
    """
    Estimated vs. actual hours per user over tasks assigned *directly* to them.

    Group-assigned tasks are excluded: splitting them across members is an
    open product decision, not something to infer here.
    """
    out: list[Workload] = []
    for user in users:
        mine = [
            t for t in tasks if t.assignee_type == AssigneeType.USER and t.assignee_id == user.id
        ]
        estimated = sum(t.estimated_duration for t in mine)
        actual = sum(log.hours_spent for t in mine for log in t.logs)
        out.append(
            Workload(
                user_id=user.id,
                name=user.name,
                estimated_hours=float(estimated),
                actual_hours=float(actual),
                task_count=len(mine),
            )
        )
    return out


def status_counts(tasks: Iterable[Task]) -> dict[TaskStatus, int]:
    counts = {s: 0 for s in TaskStatus}
    for t in tasks:
        counts[t.status] += 1
    return counts


def completion_rate(tasks: Sequence[Task]) -> int:
    """Percentage of COMPLETED tasks, rounded; 0 for an empty list."""
    if not tasks:
        return 0
    done = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return round(done * 100 / len(tasks))


# ---- deep links ----


def build_task_link(base_url: str, task_id: str) -> str:
    """`<base without query/fragment/trailing slash>?taskId=<id>`."""
    parts = urlsplit((base_url or "").strip())
    path = parts.path.rstrip("/")
    base = urlunsplit((parts.scheme, parts.netloc, path, "", ""))
    return f"{base}?taskId={task_id}"
