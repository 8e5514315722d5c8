# src/taskflow/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

# Components that log from background threads; on the console they would
# interleave with the REPL prompt, so only problems get through.
BACKGROUND_LOGGERS = (
    "taskflow.storage.shared_store",
    "taskflow.reminders",
)

# Libraries whose DEBUG/INFO output is noise even in the file log.
LIBRARY_LEVELS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


class ConsoleNoiseFilter(logging.Filter):
    """Console filter: app logs pass, background components need WARNING+, everything else ERROR+."""

    def __init__(self, background: Iterable[str] = BACKGROUND_LOGGERS) -> None:
        super().__init__()
        self._background = tuple(background)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(self._background):
            return record.levelno >= logging.WARNING
        if name == "taskflow" or name.startswith("taskflow."):
            return True
        # py.warnings and third-party loggers.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskflow",
    app_name: str = "taskflow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler (filtered, for interactive use) plus a full file log at
    <log_dir>/<app_name>.log. Returns the log file path.

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{app_name}.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    return log_file
