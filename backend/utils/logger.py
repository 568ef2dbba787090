"""
Logging for the backend.

Console lines are for people; the rotating file holds one JSON record per
line. Every record carries the id of the HTTP request it was emitted under,
and records about a user or a chat session carry those ids as top-level
fields so a user's or a session's activity can be grepped out of the file.
"""
import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Set per HTTP request by the middleware in main.py
request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

# Pulled out of `extra` into the top level of a JSON record
TAGS = ("user_id", "session_id")

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id.get()
        return True


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        tags = [f"{name}={getattr(record, name)}" for name in ("request_id",) + TAGS if getattr(record, name, None)]
        return f"{line} [{' '.join(tags)}]" if tags else line


class JsonFormatter(logging.Formatter):
    """ts/level/logger/msg, the request id and tags, then any other extras under "context"."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        context = {}
        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key == "request_id":
                continue
            if key in TAGS:
                entry[key] = value
            else:
                context[key] = value
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def init_logging(*, level: Optional[int] = None, log_dir: Optional[Path] = None) -> None:
    """
    Replace the root logger's handlers. LOG_LEVEL and LOG_DIR apply when the
    arguments are not given; the file handler is skipped if LOG_DIR is not writable.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if level is None:
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root.setLevel(level)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_ConsoleFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S"))
    handlers = [console]
    file_error = None

    log_dir = Path(log_dir or os.getenv("LOG_DIR") or Path(__file__).resolve().parents[2] / "logs")
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "app.log", maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)
    except OSError as e:
        file_error = e

    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(_RequestIdFilter())
        root.addHandler(handler)

    if file_error is not None:
        root.warning("Log directory %s not writable; logging to console only: %s", log_dir, file_error)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not logging.getLogger().handlers:
        init_logging()
    return logging.getLogger(name)
