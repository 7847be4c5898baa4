"""Structured logging helpers (secret-safe)."""

import logging
import sys
from typing import Any

from qcsat.core.config import settings


def build_log_context(
    *,
    integration_id: str | None = None,
    project_id: str | None = None,
    event_id: str | None = None,
    job_id: str | None = None,
    job_type: str | None = None,
    request_id: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Return a log context dict containing only the provided fields."""
    context: dict[str, Any] = {}
    if integration_id:
        context["integration_id"] = str(integration_id)
    if project_id:
        context["project_id"] = str(project_id)
    if event_id:
        context["event_id"] = str(event_id)
    if job_id:
        context["job_id"] = job_id
    if job_type:
        context["job_type"] = job_type
    if request_id:
        context["request_id"] = request_id
    for key, value in extra.items():
        if value is not None and value != "":
            context[key] = value
    return context


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure the root logger.

    JSON output carries timestamp, level, logger name, message and any
    context passed through ``extra=build_log_context(...)``.
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_format = (log_format or settings.LOG_FORMAT).lower()

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        from pythonjsonlogger.json import JsonFormatter

        handler.setFormatter(
            JsonFormatter(
                fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={
                    "asctime": "timestamp",
                    "levelname": "level",
                },
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    root_logger.addHandler(handler)
