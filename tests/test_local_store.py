# tests/test_local_store.py

from __future__ import annotations

import sqlite3

import pytest

from taskflow.core.errors import WriteFailure
from taskflow.core.models import SystemConfig
from taskflow.storage.local_store import LocalStore

from .fakes import make_full_task, make_user


def test_subscribe_delivers_current_snapshot_immediately(store: LocalStore) -> None:
    store.users.put(make_user("alice"))
    seen: list[list] = []
    unsub = store.users.subscribe(seen.append)
    assert [u.id for u in seen[0]] == ["alice"]
    unsub()


def test_every_change_delivers_a_full_snapshot(store: LocalStore) -> None:
    seen: list[list[str]] = []
    unsub = store.users.subscribe(lambda items: seen.append([u.id for u in items]))

    store.users.put(make_user("alice"))
    store.users.put(make_user("bob"))
    store.users.remove("alice")

    assert seen == [[], ["alice"], ["alice", "bob"], ["bob"]]
    unsub()


def test_put_is_an_idempotent_upsert(store: LocalStore) -> None:
    store.users.put(make_user("alice"))
    store.users.put(make_user("alice"))
    assert len(store.users.load()) == 1
    assert store.count_documents() == 1


def test_remove_unknown_id_is_a_silent_noop(store: LocalStore) -> None:
    seen: list = []
    unsub = store.users.subscribe(seen.append)
    store.users.remove("ghost")
    assert len(seen) == 1  # only the initial snapshot
    unsub()


def test_unsubscribe_is_idempotent_and_stops_delivery(store: LocalStore) -> None:
    seen: list = []
    unsub = store.users.subscribe(seen.append)
    unsub()
    unsub()
    store.users.put(make_user("alice"))
    assert len(seen) == 1


def test_tasks_are_listed_newest_first(store: LocalStore, actions) -> None:
    first = actions.add_task(title="first", assignee_id="u1", due_date=1)
    second = actions.add_task(title="second", assignee_id="u1", due_date=1)
    assert [t.id for t in store.tasks.load()] == [second.id, first.id]


def test_config_defaults_when_missing_and_not_persisted(store: LocalStore) -> None:
    assert store.config.get() == SystemConfig()
    assert store.count_documents() == 0

    store.config.put(SystemConfig(system_base_url="https://x"))
    assert store.config.get().system_base_url == "https://x"


def test_data_survives_reopen(settings) -> None:
    LocalStore(settings.local_db_path).users.put(make_user("alice"))
    reopened = LocalStore(settings.local_db_path)
    assert [u.id for u in reopened.users.load()] == ["alice"]


def test_malformed_document_is_skipped(settings, store: LocalStore) -> None:
    store.users.put(make_user("alice"))
    conn = sqlite3.connect(str(settings.local_db_path))
    conn.execute(
        "INSERT INTO documents(collection, id, body, created_at, updated_at) VALUES ('users', 'bad', '{}', 0, 0)"
    )
    conn.commit()
    conn.close()
    assert [u.id for u in store.users.load()] == ["alice"]


def test_write_failure_is_reported_and_nothing_published(store: LocalStore, monkeypatch) -> None:
    seen: list = []
    store.users.subscribe(seen.append)

    def broken_conn():
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_get_conn", broken_conn)
    with pytest.raises(WriteFailure) as exc:
        store.users.put(make_user("alice"))

    assert exc.value.collection == "users"
    assert exc.value.op == "put"
    assert len(seen) == 1


def test_full_task_survives_put_and_fresh_subscribe(settings, store: LocalStore) -> None:
    task = make_full_task()
    store.tasks.put(task)

    fresh = LocalStore(settings.local_db_path)
    seen: list[list] = []
    unsub = fresh.tasks.subscribe(seen.append)
    try:
        assert seen == [[task]]
    finally:
        unsub()
        fresh.close()
