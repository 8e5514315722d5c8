# src/taskflow/core/models.py

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Persisted attachment payloads are inline-encoded; keep them below the document size limit.
MAX_ATTACHMENT_CHARS = 800 * 1024

CONFIG_ID = "system"


def now_ms() -> int:
    """Current time as epoch milliseconds (the unit of every persisted timestamp)."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    """`<prefix>-<epoch millis>-<4 hex>`; the suffix keeps same-millisecond ids apart."""
    return f"{prefix}-{now_ms()}-{secrets.token_hex(2)}"


class _FromRaw:
    @classmethod
    def from_raw(cls, raw: Any, default: Any) -> Any:
        if not raw:
            return default
        try:
            return cls(str(raw).upper())  # type: ignore[call-arg]
        except ValueError:
            return default


class Role(_FromRaw, StrEnum):
    MANAGER = "MANAGER"
    EXECUTOR = "EXECUTOR"


class AssigneeType(_FromRaw, StrEnum):
    USER = "USER"
    GROUP = "GROUP"


class TaskStatus(_FromRaw, StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    COMPLETED = "COMPLETED"


class ReportingFrequency(_FromRaw, StrEnum):
    NONE = "NONE"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class NotificationPreference(_FromRaw, StrEnum):
    """EMAILJS sends through the mail relay; OUTLOOK defers to manual mail-client composition."""

    EMAILJS = "EMAILJS"
    OUTLOOK = "OUTLOOK"


def _opt_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v)
    return s if s != "" else None


def _opt_int(v: Any) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _float(v: Any, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _ordered_unique(ids: Any) -> list[str]:
    out: list[str] = []
    if not isinstance(ids, (list, tuple)):
        return out
    for raw in ids:
        s = str(raw)
        if s and s not in out:
            out.append(s)
    return out


@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str
    email: str
    role: Role = Role.EXECUTOR
    password: str | None = None
    avatar: str | None = None

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "password": self.password,
            "avatar": self.avatar,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> User:
        return cls(
            id=str(d["id"]),
            name=str(d.get("name") or ""),
            email=str(d.get("email") or ""),
            role=Role.from_raw(d.get("role"), Role.EXECUTOR),
            password=_opt_str(d.get("password")),
            avatar=_opt_str(d.get("avatar")),
        )


@dataclass(frozen=True, slots=True)
class Group:
    id: str
    name: str
    member_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        # memberIds is an ordered set.
        object.__setattr__(self, "member_ids", _ordered_unique(self.member_ids))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "memberIds": list(self.member_ids)}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Group:
        return cls(
            id=str(d["id"]),
            name=str(d.get("name") or ""),
            member_ids=_ordered_unique(d.get("memberIds")),
        )


@dataclass(frozen=True, slots=True)
class ProgressLog:
    """One executor report. Immutable once created except for the manager-reply fields."""

    id: str
    timestamp: int
    hours_spent: float
    comment: str
    attachment_name: str | None = None
    attachment_data: str | None = None
    manager_reply: str | None = None
    manager_reply_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "hoursSpent": self.hours_spent,
            "comment": self.comment,
            "attachmentName": self.attachment_name,
            "attachmentData": self.attachment_data,
            "managerReply": self.manager_reply,
            "managerReplyAt": self.manager_reply_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ProgressLog:
        return cls(
            id=str(d["id"]),
            timestamp=_opt_int(d.get("timestamp")) or 0,
            hours_spent=max(0.0, _float(d.get("hoursSpent"))),
            comment=str(d.get("comment") or ""),
            attachment_name=_opt_str(d.get("attachmentName")),
            attachment_data=_opt_str(d.get("attachmentData")),
            manager_reply=_opt_str(d.get("managerReply")),
            manager_reply_at=_opt_int(d.get("managerReplyAt")),
        )


@dataclass(frozen=True, slots=True)
class SubTask:
    id: str
    title: str
    is_completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "isCompleted": self.is_completed}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SubTask:
        return cls(
            id=str(d["id"]),
            title=str(d.get("title") or ""),
            is_completed=bool(d.get("isCompleted", False)),
        )


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    description: str
    assignee_id: str
    assignee_type: AssigneeType
    start_date: int
    due_date: int
    estimated_duration: float = 0.0
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    reporting_frequency: ReportingFrequency = ReportingFrequency.DAILY
    last_reported_at: int | None = None
    last_reminder_sent_at: int | None = None
    last_reported_after_reminder: bool | None = None
    logs: list[ProgressLog] = field(default_factory=list)  # newest first
    subtasks: list[SubTask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assigneeId": self.assignee_id,
            "assigneeType": self.assignee_type.value,
            "startDate": self.start_date,
            "dueDate": self.due_date,
            "estimatedDuration": self.estimated_duration,
            "status": self.status.value,
            "progress": self.progress,
            "reportingFrequency": self.reporting_frequency.value,
            "lastReportedAt": self.last_reported_at,
            "lastReminderSentAt": self.last_reminder_sent_at,
            "lastReportedAfterReminder": self.last_reported_after_reminder,
            "logs": [log.to_dict() for log in self.logs],
            "subtasks": [s.to_dict() for s in self.subtasks],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Task:
        # Older documents carry "reminderFrequency" instead of "reportingFrequency".
        freq_raw = d.get("reportingFrequency", d.get("reminderFrequency"))
        after = d.get("lastReportedAfterReminder")
        progress = _opt_int(d.get("progress")) or 0
        return cls(
            id=str(d["id"]),
            title=str(d.get("title") or ""),
            description=str(d.get("description") or ""),
            assignee_id=str(d.get("assigneeId") or ""),
            assignee_type=AssigneeType.from_raw(d.get("assigneeType"), AssigneeType.USER),
            start_date=_opt_int(d.get("startDate")) or 0,
            due_date=_opt_int(d.get("dueDate")) or 0,
            estimated_duration=_float(d.get("estimatedDuration")),
            status=TaskStatus.from_raw(d.get("status"), TaskStatus.PENDING),
            progress=max(0, min(100, progress)),
            reporting_frequency=ReportingFrequency.from_raw(freq_raw, ReportingFrequency.NONE),
            last_reported_at=_opt_int(d.get("lastReportedAt")),
            last_reminder_sent_at=_opt_int(d.get("lastReminderSentAt")),
            last_reported_after_reminder=None if after is None else bool(after),
            logs=[ProgressLog.from_dict(x) for x in d.get("logs") or [] if isinstance(x, dict)],
            subtasks=[SubTask.from_dict(x) for x in d.get("subtasks") or [] if isinstance(x, dict)],
        )


@dataclass(frozen=True, slots=True)
class SystemConfig:
    """Process-wide shared configuration (a singleton document)."""

    notification_preference: NotificationPreference = NotificationPreference.EMAILJS
    emailjs_service_id: str = ""
    emailjs_template_id: str = ""
    emailjs_reminder_template_id: str = ""
    emailjs_public_key: str = ""
    system_base_url: str = ""
    last_auto_reminder_sent_at: int | None = None

    @property
    def id(self) -> str:
        return CONFIG_ID

    @property
    def has_emailjs_credentials(self) -> bool:
        return bool(self.emailjs_service_id and self.emailjs_template_id and self.emailjs_public_key)

    @property
    def reminder_template_id(self) -> str:
        return self.emailjs_reminder_template_id or self.emailjs_template_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": CONFIG_ID,
            "notificationPreference": self.notification_preference.value,
            "emailJsServiceId": self.emailjs_service_id,
            "emailJsTemplateId": self.emailjs_template_id,
            "emailJsReminderTemplateId": self.emailjs_reminder_template_id,
            "emailJsPublicKey": self.emailjs_public_key,
            "systemBaseUrl": self.system_base_url,
            "lastAutoReminderSentAt": self.last_auto_reminder_sent_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SystemConfig:
        return cls(
            notification_preference=NotificationPreference.from_raw(
                d.get("notificationPreference"), NotificationPreference.EMAILJS
            ),
            emailjs_service_id=str(d.get("emailJsServiceId") or ""),
            emailjs_template_id=str(d.get("emailJsTemplateId") or ""),
            emailjs_reminder_template_id=str(d.get("emailJsReminderTemplateId") or ""),
            emailjs_public_key=str(d.get("emailJsPublicKey") or ""),
            system_base_url=str(d.get("systemBaseUrl") or ""),
            last_auto_reminder_sent_at=_opt_int(d.get("lastAutoReminderSentAt")),
        )
