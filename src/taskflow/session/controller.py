# src/taskflow/session/controller.py

from __future__ import annotations

"""
Session / routing controller.

Owns the explicit session context (current identity, pending deep link,
active view) instead of ambient globals. Lifecycle:

    init(address)  -> on app start: read the deep link, restore the persisted identity
    teardown()     -> stop listening to the replica

Phases are derived, never stored:
- SETUP          the live users collection is empty
- LOGIN          users exist, nobody is authenticated
- AUTHENTICATED  a current user is set

A pending deep link is resolved exactly once, after authentication *and*
after the tasks and groups snapshots are live (a task may reference a group
the replica has not seen yet). It is always cleared afterwards and the
taskId parameter is stripped from the visible address.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from ..core import rules
from ..core.errors import AccessDenied, AuthenticationFailed, ValidationError
from ..core.models import Task, User
from ..core.ports import SessionStore
from ..sync.actions import Actions
from ..sync.replica import CollectionState, LiveReplica
from .deeplink import parse_deep_link, strip_deep_link

logger = logging.getLogger(__name__)


class Phase(StrEnum):
    SETUP = "setup"
    LOGIN = "login"
    AUTHENTICATED = "authenticated"


class ViewMode(StrEnum):
    """Manager views."""

    DASHBOARD = "DASHBOARD"
    CREATE_TASK = "CREATE_TASK"
    USER_MANAGEMENT = "USER_MANAGEMENT"
    TASK_DETAIL = "TASK_DETAIL"
    SYSTEM_SETTINGS = "SYSTEM_SETTINGS"


class ExecutorView(StrEnum):
    LIST = "LIST"
    DETAIL = "DETAIL"


@dataclass(slots=True)
class SessionContext:
    current_user: User | None = None
    # True once the current user has been seen in a users snapshot.
    confirmed: bool = False
    restoring_user_id: str | None = None
    pending_task_id: str | None = None
    view: ViewMode = ViewMode.DASHBOARD
    executor_view: ExecutorView = ExecutorView.LIST
    selected_task_id: str | None = None
    login_selection: str | None = None
    address: str = ""
    notices: list[str] = field(default_factory=list)


class SessionController:
    def __init__(
        self,
        replica: LiveReplica,
        actions: Actions,
        session_store: SessionStore,
    ) -> None:
        self._replica = replica
        self._actions = actions
        self._store = session_store
        self._lock = threading.RLock()
        self.ctx = SessionContext()
        self._remove_listener: Callable[[], None] | None = None

    # ---- lifecycle ----

    def init(self, address: str = "") -> None:
        with self._lock:
            self.ctx = SessionContext(address=address or "")
            self.ctx.pending_task_id = parse_deep_link(address)
            if self.ctx.pending_task_id:
                logger.info("Deep link pending task=%s", self.ctx.pending_task_id)
            self.ctx.restoring_user_id = self._store.load()
        if self._remove_listener is None:
            self._remove_listener = self._replica.add_listener(self._on_replica_change)
        # Collections may already be live (synchronous adapters).
        self._on_replica_change("users")

    def teardown(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    # ---- derived state ----

    @property
    def phase(self) -> Phase:
        if not self._replica.users:
            with self._lock:
                # The admin created by setup is authenticated before its snapshot arrives.
                if self.ctx.current_user is not None and not self.ctx.confirmed:
                    return Phase.AUTHENTICATED
            return Phase.SETUP
        if self.current_user is None:
            return Phase.LOGIN
        return Phase.AUTHENTICATED

    @property
    def current_user(self) -> User | None:
        with self._lock:
            cached = self.ctx.current_user
        if cached is None:
            return None
        # Prefer the live version (role/name edits take effect immediately).
        return rules.find_user(self._replica.users, cached.id) or cached

    def login_selection(self) -> User | None:
        """The user picked on the login screen; falls back to the first user if it vanished."""
        users = self._replica.users
        with self._lock:
            chosen = rules.find_user(users, self.ctx.login_selection)
            if chosen is None and users:
                chosen = users[0]
                self.ctx.login_selection = chosen.id
            return chosen

    def select_login_user(self, user_id: str) -> User | None:
        with self._lock:
            self.ctx.login_selection = user_id
        return self.login_selection()

    def pop_notices(self) -> list[str]:
        with self._lock:
            out = list(self.ctx.notices)
            self.ctx.notices.clear()
        return out

    def _notice(self, text: str) -> None:
        self.ctx.notices.append(text)

    # ---- transitions ----

    def setup_admin(self, name: str, email: str, password: str | None = None) -> User:
        if self.phase != Phase.SETUP:
            raise ValidationError("setup is only possible while no users exist")
        user = self._actions.setup_admin(name, email, password)
        with self._lock:
            self._authenticate(user)
        self._maybe_resolve_pending()
        with self._lock:
            # First stop after setup is adding the team, unless a link opened a task.
            if self.ctx.selected_task_id is None:
                self.ctx.view = ViewMode.USER_MANAGEMENT
        return user

    def attempt_login(self, user_id: str, password: str | None) -> User:
        user = rules.find_user(self._replica.users, user_id)
        if user is None:
            logger.info("Login failed: unknown user %s", user_id)
            raise AuthenticationFailed("unknown user")
        # Legacy users without a stored password may log in with anything.
        if user.password and user.password != (password or ""):
            logger.info("Login failed: wrong password for %s", user_id)
            raise AuthenticationFailed("wrong password")
        with self._lock:
            self._authenticate(user)
        self._maybe_resolve_pending()
        return user

    def _authenticate(self, user: User) -> None:
        self.ctx.current_user = user
        self.ctx.confirmed = rules.find_user(self._replica.users, user.id) is not None
        self.ctx.restoring_user_id = None
        self.ctx.view = ViewMode.DASHBOARD
        self.ctx.executor_view = ExecutorView.LIST
        self.ctx.selected_task_id = None
        self._store.save(user.id)
        logger.info("Authenticated user=%s role=%s", user.id, user.role.value)

    def logout(self) -> None:
        with self._lock:
            user = self.ctx.current_user
            self.ctx.current_user = None
            self.ctx.confirmed = False
            self.ctx.restoring_user_id = None
            self.ctx.pending_task_id = None
            self.ctx.selected_task_id = None
            self.ctx.view = ViewMode.DASHBOARD
            self.ctx.executor_view = ExecutorView.LIST
            self.ctx.address = strip_deep_link(self.ctx.address)
            self._store.clear()
        logger.info("Logged out user=%s", user.id if user else None)

    # ---- replica reactions ----

    def _on_replica_change(self, name: str) -> None:
        if name == "users":
            self._on_users()
        if name in ("users", "tasks", "groups"):
            self._maybe_resolve_pending()

    def _on_users(self) -> None:
        if self._replica.state_of("users") != CollectionState.LIVE:
            return
        users = self._replica.users
        logout = False
        with self._lock:
            restoring = self.ctx.restoring_user_id
            if restoring and self.ctx.current_user is None:
                user = rules.find_user(users, restoring)
                if user is not None:
                    self._authenticate(user)
                    logger.info("Session restored user=%s", user.id)
                else:
                    logger.info("Persisted session user %s no longer exists", restoring)
                    self.ctx.restoring_user_id = None
                    self._store.clear()

            current = self.ctx.current_user
            if current is not None:
                if rules.find_user(users, current.id) is not None:
                    self.ctx.confirmed = True
                elif self.ctx.confirmed:
                    # Deleted (possibly by another client) while logged in.
                    logout = True
        if logout:
            self._notice("Your account was removed.")
            self.logout()

    def _maybe_resolve_pending(self) -> None:
        with self._lock:
            task_id = self.ctx.pending_task_id
            user = self.ctx.current_user
        if not task_id or user is None:
            return
        if self._replica.state_of("tasks") != CollectionState.LIVE:
            return
        if self._replica.state_of("groups") != CollectionState.LIVE:
            return
        self._resolve_pending(task_id, self.current_user or user)

    def _resolve_pending(self, task_id: str, user: User) -> None:
        task = rules.find_task(self._replica.tasks, task_id)
        with self._lock:
            if self.ctx.pending_task_id != task_id:
                return  # resolved concurrently
            self.ctx.pending_task_id = None
            self.ctx.address = strip_deep_link(self.ctx.address)

            if task is None:
                logger.info("Deep link task=%s not found", task_id)
                self._notice(f"Linked task {task_id} does not exist.")
                return
            if user.is_manager:
                self._open(task, user)
                logger.info("Deep link opened task=%s for manager=%s", task_id, user.id)
                return
            if rules.is_visible_to(task, user, self._replica.groups):
                self._open(task, user)
                logger.info("Deep link opened task=%s for executor=%s", task_id, user.id)
                return
            logger.info("Deep link denied task=%s user=%s", task_id, user.id)
            self._notice("You do not have access to this task, or it is not assigned to you.")

    # ---- routing ----

    def _require_user(self) -> User:
        user = self.current_user
        if user is None:
            raise AccessDenied("not logged in")
        return user

    def _open(self, task: Task, user: User) -> None:
        self.ctx.selected_task_id = task.id
        if user.is_manager:
            self.ctx.view = ViewMode.TASK_DETAIL
        else:
            self.ctx.executor_view = ExecutorView.DETAIL

    def can_open(self, task: Task) -> bool:
        user = self.current_user
        if user is None:
            return False
        return user.is_manager or rules.is_visible_to(task, user, self._replica.groups)

    def open_task(self, task_id: str) -> Task:
        user = self._require_user()
        task = rules.find_task(self._replica.tasks, task_id)
        if task is None:
            raise ValidationError(f"unknown task: {task_id}")
        if not self.can_open(task):
            logger.info("Access denied task=%s user=%s", task_id, user.id)
            raise AccessDenied("task is not assigned to you")
        with self._lock:
            self._open(task, user)
        return task

    def close_task(self) -> None:
        with self._lock:
            self.ctx.selected_task_id = None
            self.ctx.executor_view = ExecutorView.LIST
            if self.ctx.view == ViewMode.TASK_DETAIL:
                self.ctx.view = ViewMode.DASHBOARD

    def set_view(self, view: ViewMode) -> None:
        user = self._require_user()
        if not user.is_manager:
            raise AccessDenied("only managers can switch views")
        with self._lock:
            self.ctx.view = ViewMode(view)
            if self.ctx.view != ViewMode.TASK_DETAIL:
                self.ctx.selected_task_id = None

    @property
    def selected_task(self) -> Task | None:
        with self._lock:
            task_id = self.ctx.selected_task_id
        return rules.find_task(self._replica.tasks, task_id)

    def visible_tasks(self) -> list[Task]:
        user = self.current_user
        if user is None:
            return []
        return rules.tasks_visible_to(self._replica.tasks, user, self._replica.groups)
