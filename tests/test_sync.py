# tests/test_sync.py

from __future__ import annotations

from dataclasses import replace

import pytest

from taskflow.core import rules
from taskflow.core.errors import ValidationError, WriteFailure
from taskflow.core.models import AssigneeType, ReportingFrequency, Role, TaskStatus
from taskflow.sync.actions import Actions
from taskflow.sync.replica import CollectionState, LiveReplica

from .fakes import DeferredAdapter, make_user


def test_replica_states_and_readiness_follow_tasks_snapshot() -> None:
    adapter = DeferredAdapter()
    replica = LiveReplica(adapter)
    assert replica.state_of("tasks") == CollectionState.UNINITIALIZED

    replica.start()
    assert replica.state_of("users") == CollectionState.LOADING
    assert not replica.ready

    adapter.flush("users", "groups", "config")
    assert not replica.ready

    adapter.flush("tasks")
    assert replica.ready
    assert replica.state_of("tasks") == CollectionState.LIVE


def test_start_is_idempotent_and_stop_unsubscribes_everything() -> None:
    adapter = DeferredAdapter()
    replica = LiveReplica(adapter)
    replica.start()
    replica.start()
    assert len(adapter.users.subs) == 1

    replica.stop()
    replica.stop()
    assert adapter.users.subs == []
    assert adapter.tasks.subs == []
    assert replica.state_of("users") == CollectionState.UNINITIALIZED


def test_snapshots_replace_wholesale_and_late_delivery_is_ignored() -> None:
    adapter = DeferredAdapter()
    replica = LiveReplica(adapter)
    replica.start()

    adapter.users.put(make_user("alice"))
    adapter.flush("users")
    adapter.users.remove("alice")
    adapter.users.put(make_user("bob"))
    adapter.flush("users")
    assert [u.id for u in replica.users] == ["bob"]

    callback = adapter.users.subs[0]
    replica.stop()
    callback([make_user("zed")])
    assert [u.id for u in replica.users] == ["bob"]


def test_writes_are_not_applied_optimistically() -> None:
    adapter = DeferredAdapter()
    replica = LiveReplica(adapter)
    actions = Actions(adapter, replica)
    replica.start()
    adapter.flush()

    user = actions.add_user("Alice", "alice@example.com", "pw")
    assert replica.users == ()  # requested, not applied

    adapter.flush("users")
    assert [u.id for u in replica.users] == [user.id]


def test_listeners_are_told_which_collection_changed(replica: LiveReplica, actions: Actions) -> None:
    changed: list[str] = []
    remove = replica.add_listener(changed.append)
    actions.add_user("Alice", "alice@example.com", "pw")
    remove()
    actions.add_user("Bob", "bob@example.com", "pw")
    assert changed == ["users"]


def test_add_user_and_group_validation(actions: Actions) -> None:
    with pytest.raises(ValidationError):
        actions.add_user("", "a@x", "pw")
    with pytest.raises(ValidationError):
        actions.add_user("A", "a@x", "")
    with pytest.raises(ValidationError):
        actions.add_group("Empty", [])
    with pytest.raises(ValidationError):
        actions.add_task(title="x", assignee_id="u1", due_date=None)
    with pytest.raises(ValidationError):
        actions.add_task(title="", assignee_id="u1", due_date=1)


def test_setup_admin_is_a_manager_with_optional_password(actions: Actions, replica: LiveReplica) -> None:
    admin = actions.setup_admin("Boss", "boss@example.com")
    assert admin.role == Role.MANAGER
    assert admin.id.startswith("admin-")
    assert replica.users[0].password is None


def test_add_task_defaults(actions: Actions, replica: LiveReplica) -> None:
    task = actions.add_task(title="Ship", assignee_id="g1", assignee_type=AssigneeType.GROUP, due_date=5)
    (stored,) = replica.tasks
    assert stored == task
    assert stored.status == TaskStatus.PENDING
    assert stored.progress == 0
    assert stored.logs == []
    assert stored.start_date > 0


def test_report_then_reply_round_trip(actions: Actions, replica: LiveReplica) -> None:
    task = actions.add_task(title="Ship", assignee_id="u1", due_date=5)
    actions.submit_progress_report(task.id, hours_spent=2, comment="half way", progress=50)
    (stored,) = replica.tasks
    assert stored.progress == 50
    assert stored.last_reported_at is not None

    actions.reply_to_log(task.id, stored.logs[0].id, "thanks")
    assert replica.tasks[0].logs[0].manager_reply == "thanks"


def test_edit_on_unknown_task_is_a_validation_error(actions: Actions) -> None:
    with pytest.raises(ValidationError):
        actions.edit_task_status("task-missing", TaskStatus.COMPLETED)


def test_delete_user_leaves_assigned_tasks_dangling(actions: Actions, replica: LiveReplica) -> None:
    alice = actions.add_user("Alice", "alice@example.com", "pw")
    actions.add_task(title="Ship", assignee_id=alice.id, due_date=5)
    actions.delete_user(alice.id)
    assert replica.users == ()
    assert replica.tasks[0].assignee_id == alice.id


def test_failed_write_leaves_replica_unchanged(actions: Actions, replica: LiveReplica, store, monkeypatch) -> None:
    def boom(*_a, **_kw):
        raise WriteFailure("users", "put", "x")

    monkeypatch.setattr(store, "_write_doc", boom)
    with pytest.raises(WriteFailure):
        actions.add_user("Alice", "alice@example.com", "pw")
    assert replica.users == ()


def test_update_config_writes_whole_document(actions: Actions, replica: LiveReplica) -> None:
    actions.update_config(emailjs_service_id="svc")
    actions.update_config(system_base_url="https://x")
    cfg = replica.config
    assert (cfg.emailjs_service_id, cfg.system_base_url) == ("svc", "https://x")


@pytest.mark.parametrize("estimate", [float("nan"), "inf", -1])
def test_add_task_rejects_bad_estimate(actions: Actions, replica: LiveReplica, estimate) -> None:
    with pytest.raises(ValidationError):
        actions.add_task(title="Ship", assignee_id="u1", due_date=5, estimated_duration=estimate)
    assert replica.tasks == []


def test_group_membership_edits_keep_at_least_one_member(actions: Actions, replica: LiveReplica) -> None:
    group = actions.add_group("Devs", ["e1"])
    actions.set_group_members(group.id, ["e1", "e2", ""])
    assert replica.groups[0].member_ids == ["e1", "e2"]

    with pytest.raises(ValidationError):
        actions.set_group_members(group.id, [])
    with pytest.raises(ValidationError):
        actions.update_group(replace(replica.groups[0], name="  "))

    renamed = actions.update_group(replace(replica.groups[0], name=" Platform "))
    assert renamed.name == "Platform"
    assert replica.groups[0] == renamed


def test_hourly_group_task_is_overdue_until_a_member_reports(store) -> None:
    now = 1_700_000_000_000
    clock = [now]
    replica = LiveReplica(store)
    replica.start()
    actions = Actions(store, replica, clock=lambda: clock[0])
    try:
        group = actions.add_group("G1", ["e1", "e2"])
        task = actions.add_task(
            title="Watch the build",
            assignee_id=group.id,
            assignee_type=AssigneeType.GROUP,
            due_date=now + 48 * rules.MS_PER_HOUR,
            reporting_frequency=ReportingFrequency.HOURLY,
            start_date=now,
        )

        clock[0] = now + 2 * rules.MS_PER_HOUR
        assert rules.is_overdue(replica.tasks[0], clock[0])

        actions.submit_progress_report(task.id, hours_spent=2, comment="e1 checked in")
        (reported,) = replica.tasks
        assert reported.last_reported_at == clock[0]
        assert not rules.is_overdue(reported, clock[0])
    finally:
        replica.stop()
