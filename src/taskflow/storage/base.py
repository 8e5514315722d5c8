# src/taskflow/storage/base.py

from __future__ import annotations

"""
Backend-independent half of the persistence adapters.

Both adapters persist entities as JSON documents keyed by (collection, id).
This module turns that document layer into typed collections with the
subscribe contract the sync layer relies on:

- subscribe() delivers the current snapshot immediately
- every change delivers a new *full* snapshot
- the returned unsubscribe callable is idempotent
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..core.models import CONFIG_ID, Group, SystemConfig, Task, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

Document = dict[str, Any]
DocsCallback = Callable[[list[Document]], None]


@dataclass(frozen=True, slots=True)
class CollectionSpec(Generic[T]):
    name: str
    decode: Callable[[Document], T]
    newest_first: bool = False


USERS: CollectionSpec[User] = CollectionSpec("users", User.from_dict)
GROUPS: CollectionSpec[Group] = CollectionSpec("groups", Group.from_dict)
# New tasks are listed first, like the manager dashboard shows them.
TASKS: CollectionSpec[Task] = CollectionSpec("tasks", Task.from_dict, newest_first=True)
CONFIG: CollectionSpec[SystemConfig] = CollectionSpec("config", SystemConfig.from_dict)

ALL_COLLECTIONS: tuple[CollectionSpec[Any], ...] = (USERS, GROUPS, TASKS, CONFIG)


class Subscription:
    """Handle returned by subscribe(). Calling it closes the subscription (idempotent)."""

    def __init__(self, owner: SubscriberSet, callback: DocsCallback) -> None:
        self._owner = owner
        self._callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, docs: list[Document]) -> None:
        if not self._closed:
            self._callback(docs)

    def __call__(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._owner.discard(self)


class SubscriberSet:
    """Subscribers of one collection inside one adapter instance."""

    def __init__(self, collection: str) -> None:
        self.collection = collection
        self._subs: list[Subscription] = []
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Held while a snapshot is read and delivered, so deliveries never interleave."""
        return self._lock

    def __len__(self) -> int:
        return len(self._subs)

    def add(self, callback: DocsCallback) -> Subscription:
        sub = Subscription(self, callback)
        with self._lock:
            self._subs.append(sub)
        logger.debug("subscribe %s (active=%d)", self.collection, len(self._subs))
        return sub

    def discard(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)
        logger.debug("unsubscribe %s (active=%d)", self.collection, len(self._subs))

    def publish(self, docs: list[Document]) -> None:
        with self._lock:
            targets = list(self._subs)
            for sub in targets:
                try:
                    sub.deliver(docs)
                except Exception:
                    logger.exception("Subscriber of %s crashed on snapshot", self.collection)


def decode_docs(spec: CollectionSpec[T], docs: list[Document]) -> list[T]:
    out: list[T] = []
    for doc in docs:
        try:
            out.append(spec.decode(doc))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed %s document id=%r", spec.name, doc.get("id"))
    return out


class DocumentStore:
    """
    Base class for persistence adapters.

    Subclasses implement the document primitives (_write_doc, _delete_doc,
    _load_docs) and decide how subscribers learn about changes.
    """

    def __init__(self) -> None:
        self._subscribers = {spec.name: SubscriberSet(spec.name) for spec in ALL_COLLECTIONS}
        self.users: Collection[User] = Collection(self, USERS)
        self.groups: Collection[Group] = Collection(self, GROUPS)
        self.tasks: Collection[Task] = Collection(self, TASKS)
        self.config = ConfigDocument(self)

    # ---- document primitives (backend-specific) ----

    def _write_doc(self, collection: str, doc_id: str, body: Document) -> None:
        raise NotImplementedError

    def _delete_doc(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def _load_docs(self, spec: CollectionSpec[Any]) -> list[Document]:
        raise NotImplementedError

    # ---- subscription plumbing ----

    def _subscribe_docs(self, spec: CollectionSpec[Any], on_docs: DocsCallback) -> Subscription:
        subs = self._subscribers[spec.name]
        with subs.lock:
            sub = subs.add(on_docs)
            sub.deliver(self._load_docs(spec))
        return sub

    def _publish(self, spec: CollectionSpec[Any]) -> None:
        subs = self._subscribers[spec.name]
        if not len(subs):
            return
        with subs.lock:
            subs.publish(self._load_docs(spec))

    def close(self) -> None:
        return


class Collection(Generic[T]):
    """Typed view of one document collection."""

    def __init__(self, store: DocumentStore, spec: CollectionSpec[T]) -> None:
        self._store = store
        self._spec = spec
        self.name = spec.name

    def put(self, entity: T) -> None:
        body = entity.to_dict()  # type: ignore[attr-defined]
        self._store._write_doc(self._spec.name, str(body["id"]), body)

    def remove(self, entity_id: str) -> None:
        self._store._delete_doc(self._spec.name, str(entity_id))

    def load(self) -> list[T]:
        return decode_docs(self._spec, self._store._load_docs(self._spec))

    def subscribe(self, on_change: Callable[[list[T]], None]) -> Subscription:
        spec = self._spec
        return self._store._subscribe_docs(spec, lambda docs: on_change(decode_docs(spec, docs)))


class ConfigDocument:
    """The SystemConfig singleton stored as the single document of the config collection."""

    name = CONFIG.name

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def _pick(docs: list[Document]) -> SystemConfig:
        for doc in docs:
            if doc.get("id") == CONFIG_ID:
                try:
                    return SystemConfig.from_dict(doc)
                except (TypeError, ValueError):
                    logger.warning("Malformed config document; using defaults")
        return SystemConfig()

    def put(self, config: SystemConfig) -> None:
        self._store._write_doc(CONFIG.name, CONFIG_ID, config.to_dict())

    def get(self) -> SystemConfig:
        return self._pick(self._store._load_docs(CONFIG))

    def subscribe(self, on_change: Callable[[SystemConfig], None]) -> Subscription:
        return self._store._subscribe_docs(CONFIG, lambda docs: on_change(self._pick(docs)))
