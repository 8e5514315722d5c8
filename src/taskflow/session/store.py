# src/taskflow/session/store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Best-effort: not critical on Windows or restricted FS.
        os.chmod(path, 0o600)


class SessionFileStore:
    """
    Keeps the logged-in user id in a small JSON file so identity survives
    process restarts. The file must live under a gitignored local dir.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> str | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable session file %s; ignoring it", self._path)
            return None
        if not isinstance(data, dict):
            return None
        user_id = data.get("userId")
        return str(user_id) if user_id else None

    def save(self, user_id: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write_json(self._path, {"userId": user_id})
        logger.debug("Session saved user=%s", user_id)

    def clear(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()
        logger.debug("Session cleared")
