# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskflow.core.state import AppState
from taskflow.session.controller import SessionController
from taskflow.session.store import SessionFileStore
from taskflow.storage.local_store import LocalStore
from taskflow.sync.actions import Actions
from taskflow.sync.replica import LiveReplica

from .fakes import FakeNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskflow-test",
        log_level="DEBUG",
        backend="local",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        local_db_path=tmp_path / "taskflow.sqlite3",
        session_path=tmp_path / "session.json",
        database_url=f"sqlite:///{tmp_path / 'shared.sqlite3'}",
        shared_poll_seconds=0.05,
        # Reminders / notifications
        reminders_enabled=False,
        reminder_interval_seconds=300,
        emailjs_api_url="https://relay.test/send",
        http_timeout_seconds=5.0,
        default_base_url="https://app.test/board/",
    )


@pytest.fixture()
def store(settings: SimpleNamespace):
    s = LocalStore(settings.local_db_path)
    yield s
    s.close()


@pytest.fixture()
def replica(store: LocalStore):
    r = LiveReplica(store)
    r.start()
    yield r
    r.stop()


@pytest.fixture()
def actions(store: LocalStore, replica: LiveReplica) -> Actions:
    return Actions(store, replica)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def state(settings, store, replica, actions, notifier) -> AppState:
    """
    AppState wired with a real LocalStore and a fake mail relay.

    NOTE: We keep the real SQLite store here because its snapshot behaviour
    is part of what we want to test.
    """
    session = SessionController(replica, actions, SessionFileStore(settings.session_path))
    session.init("")
    return AppState(
        settings=settings,
        adapter=store,
        replica=replica,
        actions=actions,
        session=session,
        notifier=notifier,
    )


@pytest.fixture()
def team(actions: Actions) -> SimpleNamespace:
    """A manager, two executors and a group containing one of them."""
    boss = actions.setup_admin("Boss", "boss@example.com", "pw")
    alice = actions.add_user("Alice", "alice@example.com", "a1")
    bob = actions.add_user("Bob", "bob@example.com", "b1")
    devs = actions.add_group("Devs", [alice.id])
    return SimpleNamespace(boss=boss, alice=alice, bob=bob, devs=devs)

