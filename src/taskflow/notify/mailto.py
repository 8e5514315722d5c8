# src/taskflow/notify/mailto.py

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import quote


def build_mailto(recipients: Iterable[str], subject: str, body: str) -> str:
    """mailto: URI for manual composition in the user's mail client (OUTLOOK mode)."""
    to = ",".join(r for r in recipients if r)
    return f"mailto:{to}?subject={quote(subject, safe='')}&body={quote(body, safe='')}"
