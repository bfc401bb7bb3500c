"""Structured logging module for clipflow.

Provides configurable logging with JSON format support, file rotation and
job context tagging.
"""

from clipflow.logging.config import configure_logging
from clipflow.logging.context import JobContextFilter, get_job_context, job_context
from clipflow.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "JobContextFilter",
    "configure_logging",
    "get_job_context",
    "job_context",
]
