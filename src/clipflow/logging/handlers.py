"""Structured (JSON lines) log output."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from clipflow.logging.context import CONTEXT_FIELDS

# Attributes every LogRecord carries, plus what our own filter adds
_RESERVED = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName", "context_tag", *CONTEXT_FIELDS}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp``, ``level``, ``logger``, ``message``, then any of
    ``job_id`` / ``worker_id`` / ``schedule_id`` that are set, ``extra`` for
    attributes passed via ``extra=``, and ``exception`` / ``stack``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                entry[field] = value

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)
