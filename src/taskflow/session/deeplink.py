# src/taskflow/session/deeplink.py

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TASK_PARAM = "taskId"


def parse_deep_link(address: str | None) -> str | None:
    """
    Extract the task id from a full URL ("https://host/app?taskId=t1") or a bare
    query string ("?taskId=t1" / "taskId=t1"). Empty values count as absent.
    """
    if not address:
        return None
    raw = address.strip()
    if "?" in raw:
        query = urlsplit(raw).query
    elif "=" in raw:
        query = raw
    else:
        return None
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == TASK_PARAM and value.strip():
            return value.strip()
    return None


def strip_deep_link(address: str | None) -> str:
    """Remove the taskId parameter from the address, keeping every other parameter."""
    if not address:
        return ""
    if "?" not in address and "=" in address:
        # Bare query string.
        return urlencode([(k, v) for k, v in parse_qsl(address, keep_blank_values=True) if k != TASK_PARAM])
    parts = urlsplit(address)
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != TASK_PARAM]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))
