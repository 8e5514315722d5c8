"""
TaskFlow: task assignment and progress tracking for small teams.

Subpackages:
- core: entities, pure domain rules, ports and errors
- storage: persistence adapters (local SQLite, shared SQL database)
- sync: live read replica of every collection + write operations
- session: identity, login/setup state machine, deep links
- notify: assignment/reminder notifications (EmailJS, mailto)
- reminders: daily automated reminder routine
- cli/connectors: console front end
"""

__version__ = "1.0.0"
