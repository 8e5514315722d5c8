# src/taskflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/replica/actions/session/notifier),
- tears everything down again in reverse order.
"""

from __future__ import annotations

import contextlib
import logging

from ..config import get_settings
from ..core.state import AppState
from ..notify.emailjs import EmailJsNotifier
from ..session.controller import SessionController
from ..session.store import SessionFileStore
from ..storage.factory import open_store
from ..sync.actions import Actions
from ..sync.replica import LiveReplica

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.local_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.session_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, address: str = "") -> AppState:
    """
    Create AppState from the provided settings and start syncing.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    adapter = open_store(settings)
    replica = LiveReplica(adapter)
    actions = Actions(adapter, replica)
    session = SessionController(replica, actions, SessionFileStore(settings.session_path))

    notifier = EmailJsNotifier(
        api_url=settings.emailjs_api_url,
        timeout_seconds=settings.http_timeout_seconds,
    )

    state = AppState(
        settings=settings,
        adapter=adapter,
        replica=replica,
        actions=actions,
        session=session,
        notifier=notifier,
    )

    # Listen before the first snapshots arrive so restore/deep-link resolution sees them.
    session.init(address)
    replica.start()
    return state


def shutdown_state(state: AppState) -> None:
    """Best-effort teardown (no exceptions should escape)."""
    with contextlib.suppress(Exception):
        state.session.teardown()
    try:
        state.replica.stop()
    except Exception:
        logger.exception("Failed to stop replica.")
    try:
        state.adapter.close()
    except Exception:
        logger.exception("Failed to close store.")
    close = getattr(state.notifier, "close", None)
    if callable(close):
        with contextlib.suppress(Exception):
            close()
