"""
Console logging for import runs.

Pipeline modules log through ``logging.getLogger(__name__)`` under the
``inventory_import`` namespace. ``configure_logging`` is called once by the
job adapter (``orchestrator.perform``); library callers that own their logging
setup simply never call it.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "inventory_import"
SQL_LOGGER = "sqlalchemy.engine"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

_is_configured = False


def build_logging_config(level: str, log_sql: bool = False) -> Dict[str, Any]:
    """Return the ``dictConfig`` payload for a run at ``level``."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "pipeline": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "pipeline",
                "level": level,
            },
        },
        "loggers": {
            # Propagate to root so pytest's caplog and host handlers still see pipeline records.
            PACKAGE_LOGGER: {"level": level, "propagate": True},
            # Statement echo per batch is only useful when chasing a failing write.
            SQL_LOGGER: {"level": "INFO" if log_sql else "WARNING", "propagate": True},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: Optional[str] = None, *, log_sql: bool = False) -> None:
    """
    Install the console handler once per process.

    Args:
        level: Log level name for pipeline output (default "INFO").
        log_sql: Also emit SQLAlchemy statement logging.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Unknown log level '{level}'")

    dictConfig(build_logging_config(log_level, log_sql=log_sql))
    _is_configured = True
    logging.getLogger(PACKAGE_LOGGER).debug("Logging configured at %s (sql=%s)", log_level, log_sql)
