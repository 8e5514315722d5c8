# tests/test_session.py

from __future__ import annotations

import pytest

from taskflow.core.errors import AccessDenied, AuthenticationFailed
from taskflow.core.models import AssigneeType, Group, Role, Task
from taskflow.session.controller import ExecutorView, Phase, SessionController, ViewMode
from taskflow.session.deeplink import parse_deep_link, strip_deep_link
from taskflow.session.store import SessionFileStore
from taskflow.sync.actions import Actions
from taskflow.sync.replica import LiveReplica

from .fakes import DeferredAdapter, FakeSessionStore, make_user

LINK = "https://app.test/board?lang=en&taskId=t1"


def _task(task_id: str, assignee_id: str, kind: AssigneeType = AssigneeType.USER) -> Task:
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        description="",
        assignee_id=assignee_id,
        assignee_type=kind,
        start_date=1,
        due_date=2,
    )


def _wire(adapter: DeferredAdapter, store=None, address: str = "") -> SessionController:
    replica = LiveReplica(adapter)
    session = SessionController(replica, Actions(adapter, replica), store or FakeSessionStore())
    session.init(address)
    replica.start()
    return session


@pytest.fixture()
def adapter() -> DeferredAdapter:
    a = DeferredAdapter()
    a.users.put(make_user("boss", Role.MANAGER, password="pw"))
    a.users.put(make_user("alice", password="a1"))
    a.users.put(make_user("bob"))
    a.groups.put(Group(id="g1", name="Devs", member_ids=["alice"]))
    a.tasks.put(_task("t1", "g1", AssigneeType.GROUP))
    a.tasks.put(_task("t2", "bob"))
    return a


# ---- deep links ----


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        (LINK, "t1"),
        ("?taskId=t9", "t9"),
        ("taskId=t9", "t9"),
        ("https://app.test/board", None),
        ("https://app.test/board?taskId=", None),
        ("", None),
    ],
)
def test_parse_deep_link(address, expected) -> None:
    assert parse_deep_link(address) == expected


def test_strip_deep_link_keeps_other_params() -> None:
    assert strip_deep_link(LINK) == "https://app.test/board?lang=en"
    assert strip_deep_link("https://app.test/board?taskId=t1") == "https://app.test/board"


# ---- phases ----


def test_empty_users_means_setup_then_admin_lands_on_user_management() -> None:
    adapter = DeferredAdapter()
    session = _wire(adapter)
    adapter.flush()
    assert session.phase == Phase.SETUP

    admin = session.setup_admin("Boss", "boss@example.com")
    # Authenticated even before the users snapshot carries the new admin.
    assert session.phase == Phase.AUTHENTICATED
    assert session.ctx.view == ViewMode.USER_MANAGEMENT

    adapter.flush("users")
    assert session.current_user == admin
    assert session.phase == Phase.AUTHENTICATED


def test_setup_admin_resolves_pending_link_once() -> None:
    adapter = DeferredAdapter()
    adapter.tasks.put(_task("t1", "nobody"))
    session = _wire(adapter, address=LINK)
    adapter.flush()
    assert session.phase == Phase.SETUP

    session.setup_admin("Boss", "boss@example.com")
    assert session.ctx.pending_task_id is None
    assert session.ctx.selected_task_id == "t1"
    assert session.ctx.view == ViewMode.TASK_DETAIL
    assert "taskId" not in session.ctx.address

    # Later snapshots do not re-route the manager.
    session.set_view(ViewMode.USER_MANAGEMENT)
    adapter.tasks.put(_task("t2", "nobody"))
    adapter.flush()
    assert session.ctx.view == ViewMode.USER_MANAGEMENT


def test_setup_admin_with_dead_link_lands_on_user_management() -> None:
    adapter = DeferredAdapter()
    session = _wire(adapter, address="https://app.test/board?taskId=gone")
    adapter.flush()

    session.setup_admin("Boss", "boss@example.com")
    assert session.ctx.view == ViewMode.USER_MANAGEMENT
    assert session.ctx.pending_task_id is None
    assert session.ctx.address == "https://app.test/board"
    assert session.pop_notices() == ["Linked task gone does not exist."]


def test_login_checks_password(adapter) -> None:
    store = FakeSessionStore()
    session = _wire(adapter, store)
    adapter.flush()
    assert session.phase == Phase.LOGIN

    with pytest.raises(AuthenticationFailed):
        session.attempt_login("alice", "wrong")
    assert session.current_user is None

    session.attempt_login("alice", "a1")
    assert session.current_user.id == "alice"
    assert store.user_id == "alice"


def test_user_without_password_can_log_in_with_anything(adapter) -> None:
    session = _wire(adapter)
    adapter.flush()
    assert session.attempt_login("bob", "whatever").id == "bob"


def test_login_selection_falls_back_to_first_user(adapter) -> None:
    session = _wire(adapter)
    adapter.flush()
    session.select_login_user("ghost")
    assert session.login_selection().id == "boss"


def test_persisted_identity_is_restored_only_if_user_still_exists(adapter) -> None:
    session = _wire(adapter, FakeSessionStore("alice"))
    assert session.current_user is None  # users not live yet
    adapter.flush("users")
    assert session.current_user.id == "alice"

    stale = FakeSessionStore("ghost")
    session = _wire(adapter, stale)
    adapter.flush("users")
    assert session.current_user is None
    assert stale.user_id is None


def test_session_file_store_round_trip(tmp_path) -> None:
    store = SessionFileStore(tmp_path / "s" / "session.json")
    assert store.load() is None
    store.save("u-1")
    assert SessionFileStore(tmp_path / "s" / "session.json").load() == "u-1"
    store.clear()
    store.clear()
    assert store.load() is None


# ---- deep link resolution ----


def test_deep_link_waits_for_groups_before_resolving(adapter) -> None:
    session = _wire(adapter, address=LINK)
    adapter.flush("users", "tasks")
    session.attempt_login("alice", "a1")

    # Group snapshot not live yet: membership cannot be evaluated.
    assert session.ctx.pending_task_id == "t1"
    assert session.ctx.selected_task_id is None

    adapter.flush("groups")
    assert session.ctx.pending_task_id is None
    assert session.ctx.selected_task_id == "t1"
    assert session.ctx.executor_view == ExecutorView.DETAIL
    assert session.ctx.address == "https://app.test/board?lang=en"


def test_deep_link_to_unassigned_task_is_denied_and_cleared(adapter) -> None:
    session = _wire(adapter, address="https://app.test/board?taskId=t2")
    adapter.flush()
    session.attempt_login("alice", "a1")

    assert session.ctx.selected_task_id is None
    assert session.ctx.pending_task_id is None
    assert session.ctx.address == "https://app.test/board"
    notices = session.pop_notices()
    assert len(notices) == 1 and "access" in notices[0]

    # Only once: a later snapshot does not re-trigger anything.
    adapter.flush("tasks")
    assert session.pop_notices() == []


def test_manager_deep_link_opens_unconditionally(adapter) -> None:
    session = _wire(adapter, address="?taskId=t2")
    adapter.flush()
    session.attempt_login("boss", "pw")
    assert session.ctx.view == ViewMode.TASK_DETAIL
    assert session.selected_task.id == "t2"


def test_deep_link_to_missing_task_gives_notice(adapter) -> None:
    session = _wire(adapter, address="?taskId=nope")
    adapter.flush()
    session.attempt_login("alice", "a1")
    assert session.ctx.selected_task_id is None
    assert session.ctx.pending_task_id is None
    assert any("does not exist" in n for n in session.pop_notices())


def test_deep_link_resolves_after_restored_login(adapter) -> None:
    session = _wire(adapter, FakeSessionStore("alice"), address=LINK)
    adapter.flush()
    assert session.ctx.selected_task_id == "t1"


# ---- routing ----


def test_executor_cannot_open_foreign_task_or_switch_views(adapter) -> None:
    session = _wire(adapter)
    adapter.flush()
    session.attempt_login("alice", "a1")

    assert [t.id for t in session.visible_tasks()] == ["t1"]
    with pytest.raises(AccessDenied):
        session.open_task("t2")
    with pytest.raises(AccessDenied):
        session.set_view(ViewMode.SYSTEM_SETTINGS)

    session.open_task("t1")
    session.close_task()
    assert session.ctx.executor_view == ExecutorView.LIST


def test_logout_clears_identity_and_pending_link(adapter) -> None:
    store = FakeSessionStore()
    session = _wire(adapter, store, address=LINK)
    adapter.flush("users")
    session.attempt_login("alice", "a1")
    assert session.ctx.pending_task_id == "t1"

    session.logout()
    assert session.current_user is None
    assert session.ctx.pending_task_id is None
    assert session.ctx.address == "https://app.test/board?lang=en"
    assert store.user_id is None
    assert session.phase == Phase.LOGIN


def test_deleting_the_current_user_logs_out(adapter) -> None:
    session = _wire(adapter)
    adapter.flush()
    session.attempt_login("alice", "a1")

    adapter.users.remove("alice")
    adapter.flush("users")
    assert session.current_user is None
    assert any("removed" in n for n in session.pop_notices())


def test_role_change_is_seen_through_live_user(adapter) -> None:
    session = _wire(adapter)
    adapter.flush()
    session.attempt_login("alice", "a1")
    adapter.users.put(make_user("alice", Role.MANAGER, password="a1"))
    adapter.flush("users")
    assert session.current_user.is_manager
