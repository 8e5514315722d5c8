# src/taskflow/storage/factory.py

from __future__ import annotations

import logging

from ..config import BACKEND_SHARED
from .base import DocumentStore

logger = logging.getLogger(__name__)


def open_store(settings) -> DocumentStore:
    """Pick the adapter named by settings.backend. Everything above only sees the common interface."""
    backend = str(getattr(settings, "backend", "local")).lower()
    if backend == BACKEND_SHARED:
        from .shared_store import SharedStore

        logger.info("Using shared backend")
        return SharedStore(
            settings.database_url,
            poll_interval=float(getattr(settings, "shared_poll_seconds", 1.0)),
        )

    from .local_store import LocalStore

    logger.info("Using local backend")
    return LocalStore(settings.local_db_path)
