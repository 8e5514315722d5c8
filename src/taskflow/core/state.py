# src/taskflow/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .ports import Notifier, PersistenceAdapter

if TYPE_CHECKING:
    from ..session.controller import SessionController
    from ..sync.actions import Actions
    from ..sync.replica import LiveReplica


@dataclass
class AppState:
    """Everything a connector needs, wired once by the composition root."""

    # Store Settings on the state for easy access in other modules later.
    settings: Any

    adapter: PersistenceAdapter
    replica: LiveReplica
    actions: Actions
    session: SessionController
    notifier: Notifier | None = None

    # Serializes command handling across connectors.
    lock: threading.RLock = field(default_factory=threading.RLock)
