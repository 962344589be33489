"""Structured JSON logging and per-step log context."""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from typing import Any

from shellpower.config import settings

step_id_var: ContextVar[str] = ContextVar("step_id", default="")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter with simulation step ID injection."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        sid = step_id_var.get("")
        if sid:
            log_entry["step_id"] = sid

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Include extra fields
        for key in ("string", "cell", "unlinked_watts", "unlinked_area", "duration_ms"):
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry)


def setup_logging(json_format: bool | None = None, level: str | int | None = None) -> None:
    """Configure root logger. Use json_format=True for machine-read logs.

    Both arguments default to the ``SHELLPOWER_LOG_JSON`` and
    ``SHELLPOWER_LOG_LEVEL`` settings.
    """
    if json_format is None:
        json_format = settings.log_json
    if level is None:
        level = settings.log_level

    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()
    root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("matplotlib").setLevel(logging.WARNING)
