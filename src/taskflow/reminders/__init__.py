"""Daily automated reminders for tasks with missed reports."""
