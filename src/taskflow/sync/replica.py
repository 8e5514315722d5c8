# src/taskflow/sync/replica.py

from __future__ import annotations

"""
Live read replica of every collection.

One subscription per collection against the persistence adapter. Each
incoming snapshot *replaces* the in-memory collection wholesale; the
replica is never patched locally, so a write only becomes visible here
after the adapter pushes the next snapshot.

Per-collection state: UNINITIALIZED -> LOADING -> LIVE.
The application is "ready" once the first tasks snapshot has arrived;
users/groups/config arrive independently and do not gate readiness.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.models import Group, SystemConfig, Task, User
from ..core.ports import PersistenceAdapter, Unsubscribe

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]

COLLECTION_NAMES = ("users", "groups", "tasks", "config")


class CollectionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    LIVE = "live"


@dataclass(frozen=True, slots=True)
class ReplicaSnapshot:
    """A consistent read of all four collections at one instant."""

    users: tuple[User, ...]
    groups: tuple[Group, ...]
    tasks: tuple[Task, ...]
    config: SystemConfig


class LiveReplica:
    def __init__(self, adapter: PersistenceAdapter) -> None:
        self._adapter = adapter
        self._lock = threading.RLock()
        self._users: tuple[User, ...] = ()
        self._groups: tuple[Group, ...] = ()
        self._tasks: tuple[Task, ...] = ()
        self._config = SystemConfig()
        self._states = {name: CollectionState.UNINITIALIZED for name in COLLECTION_NAMES}
        self._unsubscribers: list[Unsubscribe] = []
        self._listeners: list[ChangeListener] = []
        self._ready = threading.Event()
        self._started = False

    # ---- lifecycle ----

    def start(self) -> None:
        """Open one subscription per collection. Calling it again while started is a no-op."""
        with self._lock:
            if self._started:
                return
            self._started = True
            for name in COLLECTION_NAMES:
                self._states[name] = CollectionState.LOADING

        # Adapters may deliver the first snapshot synchronously inside subscribe().
        self._unsubscribers.append(self._adapter.users.subscribe(self._on_users))
        self._unsubscribers.append(self._adapter.groups.subscribe(self._on_groups))
        self._unsubscribers.append(self._adapter.config.subscribe(self._on_config))
        self._unsubscribers.append(self._adapter.tasks.subscribe(self._on_tasks))
        logger.info("Replica subscriptions opened (%d)", len(self._unsubscribers))

    def stop(self) -> None:
        """Close every subscription (mandatory on logout/unmount, idempotent)."""
        with self._lock:
            unsubs = list(self._unsubscribers)
            self._unsubscribers.clear()
            was_started = self._started
            self._started = False
            for name in COLLECTION_NAMES:
                self._states[name] = CollectionState.UNINITIALIZED
            self._ready.clear()
        for unsub in unsubs:
            unsub()
        if was_started:
            logger.info("Replica subscriptions closed (%d)", len(unsubs))

    # ---- snapshot handlers ----

    def _replace(self, name: str, attr: str, value: Any) -> None:
        with self._lock:
            if not self._started:
                # Late delivery racing with stop(): ignore.
                return
            setattr(self, attr, value)
            previous = self._states[name]
            self._states[name] = CollectionState.LIVE
            if name == "tasks":
                self._ready.set()
        if previous != CollectionState.LIVE:
            logger.info("Collection %s is live", name)
        self._notify(name)

    def _on_users(self, items: list[User]) -> None:
        self._replace("users", "_users", tuple(items))

    def _on_groups(self, items: list[Group]) -> None:
        self._replace("groups", "_groups", tuple(items))

    def _on_tasks(self, items: list[Task]) -> None:
        self._replace("tasks", "_tasks", tuple(items))

    def _on_config(self, config: SystemConfig) -> None:
        self._replace("config", "_config", config)

    # ---- listeners (re-publish to application state) ----

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self, name: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(name)
            except Exception:
                logger.exception("Replica listener crashed on %s change", name)

    # ---- read side ----

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def wait_ready(self, timeout: float | None = None) -> bool:
        return self._ready.wait(timeout)

    def state_of(self, name: str) -> CollectionState:
        with self._lock:
            return self._states[name]

    @property
    def users(self) -> tuple[User, ...]:
        with self._lock:
            return self._users

    @property
    def groups(self) -> tuple[Group, ...]:
        with self._lock:
            return self._groups

    @property
    def tasks(self) -> tuple[Task, ...]:
        with self._lock:
            return self._tasks

    @property
    def config(self) -> SystemConfig:
        with self._lock:
            return self._config

    def snapshot(self) -> ReplicaSnapshot:
        with self._lock:
            return ReplicaSnapshot(
                users=self._users, groups=self._groups, tasks=self._tasks, config=self._config
            )
