# src/taskflow/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import cast

from ..core import rules
from ..core.errors import (
    AccessDenied,
    AuthenticationFailed,
    NotificationError,
    TaskflowError,
    ValidationError,
    WriteFailure,
)
from ..core.models import (
    AssigneeType,
    NotificationPreference,
    ReportingFrequency,
    Role,
    Task,
    TaskStatus,
    User,
    now_ms,
)
from ..core.state import AppState
from ..notify.assignment import notify_assignment, send_test_message
from ..reminders.daily import run_daily_reminders
from ..session.controller import Phase, ViewMode

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except ValidationError as e:
            return f"Invalid input: {e}"
        except (AccessDenied, AuthenticationFailed) as e:
            return f"Not allowed: {e}"
        except WriteFailure as e:
            logger.warning("Command /%s write failed: %s", name, e)
            return f"Save failed, nothing was changed: {e}"
        except NotificationError as e:
            return f"Notification failed: {e}"
        except TaskflowError as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _fmt_ts(ms: int | None) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M")


def _fmt_day(ms: int | None) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).astimezone().strftime("%Y-%m-%d")


def _parse_day(raw: str) -> int:
    try:
        day = datetime.strptime(raw, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"expected a date like 2024-05-31, got {raw!r}") from e
    return int(day.astimezone().timestamp() * 1000)


NEW_USAGE = "/new <assignee_id> <due YYYY-MM-DD> <title...> [freq=NONE|HOURLY|DAILY|WEEKLY|MONTHLY] [est=<hours>] [start=YYYY-MM-DD] [-- description...]"
REPORT_USAGE = "/report <task_id> <hours> <progress|-> <comment...> [status=IN_PROGRESS|BLOCKED|COMPLETED]"

# Statuses an executor can pick when reporting.
REPORT_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.COMPLETED)


def _take_options(args: list[str], keys: tuple[str, ...]) -> tuple[list[str], dict[str, str]]:
    """Pull `key=value` tokens with a known key out of args; everything else stays positional."""
    rest: list[str] = []
    opts: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key.lower() in keys:
            opts[key.lower()] = value
        else:
            rest.append(arg)
    return rest, opts


def _require_login(state: AppState) -> User:
    user = state.session.current_user
    if user is None:
        raise AccessDenied("log in first (/login)")
    return user


def _require_manager(state: AppState) -> User:
    user = _require_login(state)
    if not user.is_manager:
        raise AccessDenied("managers only")
    return user


def _visible_task(state: AppState, task_id: str) -> Task:
    task = rules.find_task(state.replica.tasks, task_id)
    if task is None:
        raise ValidationError(f"unknown task: {task_id}")
    if not state.session.can_open(task):
        raise AccessDenied("task is not assigned to you")
    return task


def _task_line(state: AppState, task: Task, now: int) -> str:
    flag = " [REPORT OVERDUE]" if rules.is_overdue(task, now) else ""
    who = rules.assignee_name(task, state.replica.users, state.replica.groups)
    return (
        f"{task.id}  {task.title}  ({task.status.value}, {task.progress}%)"
        f"  -> {who}  due {_fmt_day(task.due_date)}{flag}"
    )


def _task_detail(state: AppState, task: Task) -> str:
    users, groups = state.replica.users, state.replica.groups
    lines = [
        f"Task {task.id}: {task.title}",
        f"  Assignee: {rules.assignee_name(task, users, groups)} ({task.assignee_type.value})",
        f"  Status: {task.status.value}  Progress: {task.progress}%",
        f"  Start: {_fmt_day(task.start_date)}  Due: {_fmt_day(task.due_date)}",
        f"  Estimated: {task.estimated_duration:g}h  Reporting: {task.reporting_frequency.value}",
        f"  Last report: {_fmt_ts(task.last_reported_at)}",
    ]
    if task.description:
        lines.append(f"  Description: {task.description}")
    for sub in task.subtasks:
        mark = "x" if sub.is_completed else " "
        lines.append(f"  [{mark}] {sub.id} {sub.title}")
    if task.logs:
        lines.append("  Reports (newest first):")
    for log in task.logs:
        att = f" [attachment: {log.attachment_name}]" if log.attachment_name else ""
        lines.append(f"    {log.id} {_fmt_ts(log.timestamp)} {log.hours_spent:g}h: {log.comment}{att}")
        if log.manager_reply:
            lines.append(f"      reply ({_fmt_ts(log.manager_reply_at)}): {log.manager_reply}")
    return "\n".join(lines)


def _notices(state: AppState, text: str) -> str:
    notes = state.session.pop_notices()
    if not notes:
        return text
    return "\n".join([*(f"[notice] {n}" for n in notes), text])


# ---- general ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    session = state.session
    user = session.current_user
    who = f"{user.name} ({user.role.value})" if user else "nobody"
    states = ", ".join(
        f"{name}={state.replica.state_of(name).value}" for name in ("users", "groups", "tasks", "config")
    )
    return _notices(
        state,
        "Status:\n"
        f"  Backend: {getattr(state.settings, 'backend', '?')}\n"
        f"  Phase: {session.phase.value}\n"
        f"  User: {who}\n"
        f"  View: {session.ctx.view.value} / {session.ctx.executor_view.value}\n"
        f"  Collections: {states}",
    )


# ---- session ----


def cmd_setup(state: AppState, args: list[str]) -> str:
    """/setup <name> <email> [password]"""
    if len(args) < 2:
        return "Usage: /setup <name> <email> [password]"
    password = args[2] if len(args) > 2 else None
    user = state.session.setup_admin(args[0], args[1], password)
    return f"Administrator {user.name} created ({user.id}). Add your team with /users add."


def cmd_login(state: AppState, args: list[str]) -> str:
    """
    /login                 -> list users and the current selection
    /login <id> [password] -> log in
    """
    session = state.session
    if session.phase == Phase.SETUP:
        return "No users yet. Create the administrator with /setup."
    if not args:
        chosen = session.login_selection()
        lines = ["Users:"]
        for u in state.replica.users:
            mark = "*" if chosen and chosen.id == u.id else " "
            lines.append(f" {mark} {u.id}  {u.name} ({u.role.value})")
        lines.append("Log in with /login <id> [password].")
        return "\n".join(lines)
    session.select_login_user(args[0])
    user = session.attempt_login(args[0], args[1] if len(args) > 1 else None)
    return _notices(state, f"Logged in as {user.name} ({user.role.value}).")


def cmd_logout(state: AppState, args: list[str]) -> str:
    state.session.logout()
    return "Logged out."


# ---- users / groups ----


def cmd_users(state: AppState, args: list[str]) -> str:
    """
    /users                               -> list
    /users add <name> <email> <password> [manager]
    /users passwd <id> <password>
    /users role <id> manager|executor
    /users del <id>
    """
    if not args:
        _require_login(state)
        lines = ["Users:"]
        for u in state.replica.users:
            lines.append(f"  {u.id}  {u.name} <{u.email}> {u.role.value}")
        return "\n".join(lines)

    _require_manager(state)
    sub = args[0].lower()
    if sub == "add" and len(args) >= 4:
        role = Role.MANAGER if len(args) > 4 and args[4].lower() == "manager" else Role.EXECUTOR
        user = state.actions.add_user(args[1], args[2], args[3], role)
        return f"User {user.name} requested ({user.id})."
    if sub == "passwd" and len(args) >= 3:
        state.actions.reset_password(args[1], args[2])
        return "Password reset requested."
    if sub == "role" and len(args) >= 3:
        user = rules.find_user(state.replica.users, args[1])
        if user is None:
            raise ValidationError(f"unknown user: {args[1]}")
        role = Role.from_raw(args[2], None)
        if role is None:
            raise ValidationError("role must be manager or executor")
        state.actions.update_user(replace(user, role=role))
        return f"Role of {user.name} set to {role.value}."
    if sub == "del" and len(args) >= 2:
        state.actions.delete_user(args[1])
        return f"User {args[1]} removed."
    return "Usage: /users [add <name> <email> <password> [manager] | passwd <id> <pw> | role <id> <role> | del <id>]"


def cmd_groups(state: AppState, args: list[str]) -> str:
    """
    /groups                              -> list
    /groups add <name> <id,id,...>
    /groups members <id> <id,id,...>
    /groups del <id>
    """
    if not args:
        _require_login(state)
        users = state.replica.users
        lines = ["Groups:"]
        for g in state.replica.groups:
            names = ", ".join(rules.user_name(users, m) for m in g.member_ids)
            lines.append(f"  {g.id}  {g.name}: {names}")
        return "\n".join(lines)

    _require_manager(state)
    sub = args[0].lower()
    if sub == "add" and len(args) >= 3:
        group = state.actions.add_group(args[1], args[2].split(","))
        return f"Group {group.name} requested ({group.id})."
    if sub == "members" and len(args) >= 3:
        state.actions.set_group_members(args[1], args[2].split(","))
        return "Group members updated."
    if sub == "del" and len(args) >= 2:
        state.actions.delete_group(args[1])
        return f"Group {args[1]} removed."
    return "Usage: /groups [add <name> <ids> | members <id> <ids> | del <id>]"


# ---- tasks ----


def cmd_tasks(state: AppState, args: list[str]) -> str:
    _require_login(state)
    tasks = state.session.visible_tasks()
    if not tasks:
        return _notices(state, "No tasks.")
    now = now_ms()
    return _notices(state, "\n".join(_task_line(state, t, now) for t in tasks))


def cmd_open(state: AppState, args: list[str]) -> str:
    """/open <task_id> shows a task; /open with no id shows the selected one; /open close leaves it."""
    _require_login(state)
    if args and args[0].lower() == "close":
        state.session.close_task()
        return "Task closed."
    if args:
        task = state.session.open_task(args[0])
    else:
        task = state.session.selected_task
        if task is None:
            return "No task selected. Use /open <task_id>."
    return _task_detail(state, task)


def cmd_view(state: AppState, args: list[str]) -> str:
    if not args:
        return f"View: {state.session.ctx.view.value}. Options: " + ", ".join(v.value for v in ViewMode)
    try:
        view = ViewMode(args[0].upper())
    except ValueError as e:
        raise ValidationError(f"unknown view: {args[0]}") from e
    state.session.set_view(view)
    return f"View: {view.value}"


def cmd_new(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /new <assignee_id> <due YYYY-MM-DD> <title...> [freq=..] [est=..] [start=..] [-- description...]

    The assignee may be a user or a group id.
    """
    _require_manager(state)
    description = ""
    if "--" in args:
        cut = args.index("--")
        args, description = args[:cut], " ".join(args[cut + 1 :])
    args, opts = _take_options(args, ("freq", "est", "start", "desc"))
    if len(args) < 3:
        return f"Usage: {NEW_USAGE}"
    assignee_id, due_raw, title = args[0], args[1], " ".join(args[2:])
    if rules.find_group(state.replica.groups, assignee_id) is not None:
        assignee_type = AssigneeType.GROUP
    elif rules.find_user(state.replica.users, assignee_id) is not None:
        assignee_type = AssigneeType.USER
    else:
        raise ValidationError(f"unknown assignee: {assignee_id}")

    frequency = ReportingFrequency.DAILY
    if "freq" in opts:
        frequency = ReportingFrequency.from_raw(opts["freq"], None)
        if frequency is None:
            choices = ", ".join(f.value for f in ReportingFrequency)
            raise ValidationError(f"unknown frequency {opts['freq']!r} (one of {choices})")

    task = state.actions.add_task(
        title=title,
        assignee_id=assignee_id,
        assignee_type=assignee_type,
        due_date=_parse_day(due_raw),
        description=description or opts.get("desc", ""),
        estimated_duration=opts.get("est", 8.0),
        reporting_frequency=frequency,
        start_date=_parse_day(opts["start"]) if "start" in opts else None,
    )
    if emit:
        emit(f"Task {task.id} saved. Notifying assignee...")

    outcome = notify_assignment(
        task,
        state.replica.users,
        state.replica.groups,
        state.replica.config,
        state.notifier,
        str(getattr(state.settings, "default_base_url", "")),
    )
    lines = [f"Task {task.id} created.", f"  Link: {outcome.link}"]
    if outcome.mailto:
        lines.append(f"  Compose mail: {outcome.mailto}")
    if outcome.sent:
        lines.append(f"  Mailed: {', '.join(outcome.sent)}")
    if outcome.failed:
        lines.append(f"  Mail failed (task is saved): {', '.join(outcome.failed)}")
    return "\n".join(lines)


def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <task_id> status <STATUS> | progress <0..100> | delete"""
    _require_manager(state)
    if len(args) >= 2 and args[1].lower() == "delete":
        state.actions.delete_task(args[0])
        return f"Task {args[0]} removed."
    if len(args) < 3:
        return "Usage: /edit <task_id> status <STATUS> | progress <0..100> | delete"
    task_id, what, value = args[0], args[1].lower(), args[2]
    if what == "status":
        status = TaskStatus.from_raw(value, None)
        if status is None:
            raise ValidationError(f"unknown status: {value}")
        task = state.actions.edit_task_status(task_id, status)
    elif what == "progress":
        task = state.actions.edit_task_progress(task_id, value)
    else:
        return "Usage: /edit <task_id> status <STATUS> | progress <0..100> | delete"
    return f"Task {task.id}: {task.status.value}, {task.progress}%."


def cmd_report(state: AppState, args: list[str]) -> str:
    """/report <task_id> <hours> <progress|-> <comment...> [status=IN_PROGRESS|BLOCKED|COMPLETED]"""
    _require_login(state)
    args, opts = _take_options(args, ("status",))
    if len(args) < 4:
        return f"Usage: {REPORT_USAGE}"
    task = _visible_task(state, args[0])
    progress = None if args[2] == "-" else args[2]
    if progress is not None:
        try:
            progress = int(progress)
        except ValueError as e:
            raise ValidationError(f"progress must be an integer, got {args[2]!r}") from e
    status = None
    if "status" in opts:
        status = TaskStatus.from_raw(opts["status"], None)
        if status not in REPORT_STATUSES:
            choices = ", ".join(s.value for s in REPORT_STATUSES)
            raise ValidationError(f"status must be one of {choices}, got {opts['status']!r}")
    updated = state.actions.submit_progress_report(
        task.id,
        hours_spent=args[1],
        comment=" ".join(args[3:]),
        status=status,
        progress=progress,
    )
    return f"Report saved. {updated.title}: {updated.status.value}, {updated.progress}%."


def cmd_reply(state: AppState, args: list[str]) -> str:
    """/reply <task_id> <log_id> <text...>"""
    _require_manager(state)
    if len(args) < 3:
        return "Usage: /reply <task_id> <log_id> <text...>"
    state.actions.reply_to_log(args[0], args[1], " ".join(args[2:]))
    return "Reply saved."


def cmd_sub(state: AppState, args: list[str]) -> str:
    """/sub <task_id> add <title...> | done <sub_id> | undo <sub_id> | del <sub_id>"""
    _require_login(state)
    if len(args) < 3:
        return "Usage: /sub <task_id> add <title...> | done <id> | undo <id> | del <id>"
    task = _visible_task(state, args[0])
    op = args[1].lower()
    if op == "add":
        state.actions.add_subtask(task.id, " ".join(args[2:]))
    elif op in ("done", "undo"):
        state.actions.toggle_subtask(task.id, args[2], op == "done")
    elif op == "del":
        state.actions.remove_subtask(task.id, args[2])
    else:
        return "Usage: /sub <task_id> add <title...> | done <id> | undo <id> | del <id>"
    return "Subtasks updated."


# ---- dashboard ----


def cmd_overdue(state: AppState, args: list[str]) -> str:
    _require_login(state)
    now = now_ms()
    tasks = rules.overdue_tasks(state.session.visible_tasks(), now)
    if not tasks:
        return "No missed reports."
    return "\n".join(_task_line(state, t, now) for t in tasks)


def cmd_workload(state: AppState, args: list[str]) -> str:
    _require_manager(state)
    rows = rules.workload(state.replica.users, state.replica.tasks)
    lines = ["Workload (directly assigned tasks):"]
    for w in rows:
        lines.append(
            f"  {w.name}: {w.task_count} tasks, estimated {w.estimated_hours:g}h, actual {w.actual_hours:g}h"
        )
    return "\n".join(lines)


def cmd_stats(state: AppState, args: list[str]) -> str:
    _require_login(state)
    tasks = state.session.visible_tasks()
    counts = rules.status_counts(tasks)
    parts = ", ".join(f"{s.value}={n}" for s, n in counts.items())
    overdue = len(rules.overdue_tasks(tasks, now_ms()))
    return (
        f"Tasks: {len(tasks)} ({parts})\n"
        f"Completion: {rules.completion_rate(tasks)}%\n"
        f"Missed reports: {overdue}"
    )


# ---- settings ----

_CONFIG_FIELDS = {
    "service": "emailjs_service_id",
    "template": "emailjs_template_id",
    "reminder_template": "emailjs_reminder_template_id",
    "key": "emailjs_public_key",
    "base_url": "system_base_url",
}


def cmd_config(state: AppState, args: list[str]) -> str:
    """
    /config                          -> show
    /config mode emailjs|outlook
    /config set <field> <value>      (service, template, reminder_template, key, base_url)
    /config test <email>
    """
    _require_manager(state)
    cfg = state.replica.config
    if not args:
        key = "set" if cfg.emailjs_public_key else "missing"
        return (
            "System settings:\n"
            f"  Mode: {cfg.notification_preference.value}\n"
            f"  Service id: {cfg.emailjs_service_id or '-'}\n"
            f"  Template id: {cfg.emailjs_template_id or '-'}\n"
            f"  Reminder template id: {cfg.emailjs_reminder_template_id or '(default template)'}\n"
            f"  Public key: {key}\n"
            f"  Base URL: {cfg.system_base_url or '-'}\n"
            f"  Last daily reminder: {_fmt_ts(cfg.last_auto_reminder_sent_at)}"
        )

    sub = args[0].lower()
    if sub == "mode" and len(args) >= 2:
        pref = NotificationPreference.from_raw(args[1], None)
        if pref is None:
            raise ValidationError("mode must be emailjs or outlook")
        state.actions.update_config(notification_preference=pref)
        return f"Notification mode: {pref.value}."
    if sub == "set" and len(args) >= 3:
        attr = _CONFIG_FIELDS.get(args[1].lower())
        if attr is None:
            raise ValidationError(f"unknown field: {args[1]} (one of {', '.join(_CONFIG_FIELDS)})")
        state.actions.update_config(**{attr: " ".join(args[2:]).strip()})
        return f"{args[1]} saved."
    if sub == "test" and len(args) >= 2:
        mailto = send_test_message(state.actions.current_config(), state.notifier, args[1])
        if mailto:
            return f"Open this in your mail client: {mailto}"
        return f"Test mail sent to {args[1]}."
    return "Usage: /config [mode <m> | set <field> <value> | test <email>]"


def cmd_remind(state: AppState, args: list[str]) -> str:
    """Run the daily reminder pass now (still gated to once per day)."""
    _require_manager(state)
    if state.notifier is None:
        return "No mail relay configured."
    run = run_daily_reminders(
        state.replica,
        state.actions,
        state.notifier,
        base_url=str(getattr(state.settings, "default_base_url", "")),
    )
    if run.skipped:
        return f"Reminders skipped: {run.skipped}."
    return f"Reminders: {run.tasks} overdue tasks, {run.sent} mails sent, {run.failed} failed."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session, backend and sync status.")
registry.register("setup", cmd_setup, help_text="Create the first administrator: /setup <name> <email> [password].")
registry.register("login", cmd_login, help_text="List users or log in: /login <id> [password].")
registry.register("logout", cmd_logout, help_text="Log out.")
registry.register("users", cmd_users, help_text="List or manage users (managers).")
registry.register("groups", cmd_groups, help_text="List or manage groups (managers).")
registry.register("tasks", cmd_tasks, help_text="List tasks visible to you.", aliases=["ls"])
registry.register("open", cmd_open, help_text="Show a task: /open <task_id> | /open close.")
registry.register("view", cmd_view, help_text="Switch manager view: /view DASHBOARD|CREATE_TASK|...")
registry.register("new", cmd_new, help_text="Create a task: /new <assignee_id> <due YYYY-MM-DD> <title> [freq= est= start=] [-- description].")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> status|progress <v> | delete.")
registry.register("report", cmd_report, help_text="Report progress: /report <id> <hours> <progress|-> <comment> [status=].")
registry.register("reply", cmd_reply, help_text="Reply to a report: /reply <task_id> <log_id> <text>.")
registry.register("sub", cmd_sub, help_text="Subtasks: /sub <task_id> add|done|undo|del ...")
registry.register("overdue", cmd_overdue, help_text="Tasks with missed reports.")
registry.register("workload", cmd_workload, help_text="Estimated vs. actual hours per user.")
registry.register("stats", cmd_stats, help_text="Status counts and completion rate.")
registry.register("config", cmd_config, help_text="System settings: /config [mode|set|test].")
registry.register("remind", cmd_remind, help_text="Run today's reminder pass now.")
