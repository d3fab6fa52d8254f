"""
Logging setup for the API process.

Modules log through ``logging.getLogger(__name__)``. The import pipeline
(``refdata.domain.imports``) emits a summary per batch plus sampled row
rejections, so it gets its own level knob; SQLAlchemy's engine logger is held
back separately because per-row upserts would otherwise flood the console.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

APP_LOGGER = "refdata"
IMPORT_LOGGER = "refdata.domain.imports"
SQL_LOGGER = "sqlalchemy.engine"

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

_is_configured = False


def build_logging_config(
    level: str = "INFO",
    import_level: Optional[str] = None,
    sql_level: str = "WARNING",
) -> Dict[str, Any]:
    """Return the ``dictConfig`` mapping for the given levels."""
    app_level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "standard"},
        },
        "root": {"handlers": ["console"], "level": app_level},
        "loggers": {
            APP_LOGGER: {"level": app_level},
            IMPORT_LOGGER: {"level": (import_level or app_level).upper()},
            SQL_LOGGER: {"level": sql_level.upper()},
        },
    }


def configure_logging(
    level: Optional[str] = None,
    import_level: Optional[str] = None,
    sql_level: Optional[str] = None,
) -> None:
    """Apply the logging config once per process; later calls are no-ops."""
    global _is_configured

    if _is_configured:
        return

    dictConfig(build_logging_config(level or "INFO", import_level, sql_level or "WARNING"))
    logging.getLogger(__name__).debug("Logging configured at %s", (level or "INFO").upper())

    _is_configured = True
