# tests/test_models.py

from __future__ import annotations

from taskflow.core.models import (
    AssigneeType,
    Group,
    NotificationPreference,
    ReportingFrequency,
    Role,
    SystemConfig,
    Task,
    TaskStatus,
    User,
    new_id,
)


def test_new_id_prefix_and_uniqueness() -> None:
    ids = {new_id("task") for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("task-") for i in ids)


def test_task_from_dict_is_tolerant() -> None:
    task = Task.from_dict(
        {
            "id": "t1",
            "title": "x",
            "assigneeId": "u1",
            "assigneeType": "SOMETHING",
            "status": "weird",
            "reminderFrequency": "WEEKLY",
            "progress": 250,
        }
    )
    assert task.assignee_type == AssigneeType.USER
    assert task.status == TaskStatus.PENDING
    assert task.reporting_frequency == ReportingFrequency.WEEKLY
    assert task.progress == 100
    assert task.logs == [] and task.subtasks == []


def test_missing_frequency_means_none() -> None:
    task = Task.from_dict({"id": "t1", "title": "x", "assigneeId": "u1"})
    assert task.reporting_frequency == ReportingFrequency.NONE


def test_persisted_field_names() -> None:
    task = Task(
        id="t1",
        title="x",
        description="",
        assignee_id="g1",
        assignee_type=AssigneeType.GROUP,
        start_date=1,
        due_date=2,
    )
    d = task.to_dict()
    assert d["assigneeId"] == "g1"
    assert d["reportingFrequency"] == "DAILY"
    assert "lastReportedAfterReminder" in d


def test_group_member_ids_are_an_ordered_set() -> None:
    g = Group(id="g1", name="Devs", member_ids=["b", "a", "b", ""])
    assert g.member_ids == ["b", "a"]
    assert Group.from_dict({"id": "g1", "name": "Devs", "memberIds": ["x", "x"]}).member_ids == ["x"]


def test_user_role_default_and_legacy_password() -> None:
    u = User.from_dict({"id": "u1", "name": "A", "email": "a@x", "role": "???"})
    assert u.role == Role.EXECUTOR
    assert u.password is None


def test_system_config_defaults_and_reminder_template_fallback() -> None:
    cfg = SystemConfig.from_dict({"id": "system"})
    assert cfg.notification_preference == NotificationPreference.EMAILJS
    assert not cfg.has_emailjs_credentials

    cfg = SystemConfig(emailjs_template_id="tpl")
    assert cfg.reminder_template_id == "tpl"
    cfg = SystemConfig(emailjs_template_id="tpl", emailjs_reminder_template_id="rem")
    assert cfg.reminder_template_id == "rem"
    assert SystemConfig.from_dict(cfg.to_dict()) == cfg
