# src/taskflow/core/errors.py

from __future__ import annotations


class TaskflowError(Exception):
    """Base class for errors raised by taskflow."""


class ValidationError(TaskflowError, ValueError):
    """Missing/invalid field on create or edit. Raised before any write is attempted."""


class WriteFailure(TaskflowError, RuntimeError):
    """The persistence backend rejected a put/remove."""

    def __init__(self, collection: str, op: str, entity_id: str, cause: BaseException | None = None):
        self.collection = collection
        self.op = op
        self.entity_id = entity_id
        msg = f"{op} {collection}/{entity_id} failed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class AccessDenied(TaskflowError, PermissionError):
    """The current user may not see the requested task."""


class AuthenticationFailed(TaskflowError):
    """Wrong password (or unknown user) on login."""


class NotificationError(TaskflowError):
    """Notification delivery failed. Never rolls back task writes."""
