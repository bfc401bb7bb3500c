"""Logging setup from LoggingConfig."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from clipflow.logging.context import JobContextFilter
from clipflow.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from clipflow.config.models import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(context_tag)s%(name)s: %(message)s"

# Marks handlers installed here so reconfiguration replaces only ours
_CLIPFLOW_HANDLER_ATTR = "_clipflow_handler"


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def configure_logging(config: LoggingConfig) -> None:
    """Configure the root logger.

    Installs a stderr handler (unless disabled) and, when ``config.file`` is
    set, a size-rotated file handler. Both carry JobContextFilter. Calling
    this again replaces the handlers it installed previously.
    """
    root = logging.getLogger()
    root.setLevel(config.level.upper())

    for handler in list(root.handlers):
        if getattr(handler, _CLIPFLOW_HANDLER_ATTR, False):
            root.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []
    if config.include_stderr or config.file is None:
        handlers.append(logging.StreamHandler(sys.stderr))
    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                config.file,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    context_filter = JobContextFilter()
    formatter = _build_formatter(config.format)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        setattr(handler, _CLIPFLOW_HANDLER_ATTR, True)
        root.addHandler(handler)
