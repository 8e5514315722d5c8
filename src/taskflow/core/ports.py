# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The synchronization layer and everything above it depend on these Protocols,
never on a concrete backend. Local and shared persistence adapters are
interchangeable, and tests plug in in-memory fakes.
"""

from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

from .models import Group, SystemConfig, Task, User

T = TypeVar("T")


class Unsubscribe(Protocol):
    """Closes a subscription. Calling it more than once is a no-op."""

    def __call__(self) -> None: ...


class EntityCollection(Protocol, Generic[T]):
    """
    One persisted collection keyed by id.

    - put: idempotent upsert (whole-document write, last writer wins)
    - remove: delete by id; unknown id is a no-op success
    - subscribe: delivers the current snapshot immediately, then a new full
      snapshot after every add/update/delete until unsubscribed
    Write failures raise WriteFailure.
    """

    name: str

    def put(self, entity: T) -> None: ...
    def remove(self, entity_id: str) -> None: ...
    def subscribe(self, on_change: Callable[[list[T]], None]) -> Unsubscribe: ...


class ConfigDocument(Protocol):
    """The SystemConfig singleton. subscribe delivers defaults when nothing is persisted yet."""

    name: str

    def put(self, config: SystemConfig) -> None: ...
    def get(self) -> SystemConfig: ...
    def subscribe(self, on_change: Callable[[SystemConfig], None]) -> Unsubscribe: ...


class PersistenceAdapter(Protocol):
    users: EntityCollection[User]
    groups: EntityCollection[Group]
    tasks: EntityCollection[Task]
    config: ConfigDocument

    def close(self) -> None: ...


class Notifier(Protocol):
    """
    Outbound notification collaborator (mail relay).

    Raises NotificationError when delivery fails. Callers treat that as
    non-fatal: the task write has already been committed.
    """

    def send(
        self,
        *,
        credentials: SystemConfig,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        message: str,
        task_link: str,
        template_id: str | None = None,
    ) -> None: ...


class SessionStore(Protocol):
    """Where the logged-in identity survives process restarts."""

    def load(self) -> str | None: ...
    def save(self, user_id: str) -> None: ...
    def clear(self) -> None: ...

