"""Logging bootstrap for the unlock service."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
RUNTIME_LOG_NAME = "fpunlock-runtime.log"


def _logger_policy(logger_levels: Optional[Mapping[str, str]]) -> Dict[str, Dict[str, Any]]:
    """Per-logger level overrides; names are dotted logger names such as ``dbus_fast``."""
    return {name: {"level": level.upper()} for name, level in (logger_levels or {}).items()}


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    retention_days: int = 14,
    logger_levels: Optional[Mapping[str, str]] = None,
) -> Path:
    """Console plus a daily-rotated runtime log; returns the runtime log path.

    ``logger_levels`` pins individual loggers (third-party bus libraries in
    practice) to their own level independent of ``level``.
    """
    if log_dir is None:
        log_dir = Path(__file__).resolve().parents[2] / "logs"
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    runtime_log = log_dir / RUNTIME_LOG_NAME
    level = level.upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                },
                "runtime_file": {
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "default",
                    "level": level,
                    "filename": str(runtime_log),
                    "when": "midnight",
                    "backupCount": max(int(retention_days), 1),
                    "utc": True,
                    "delay": True,
                    "encoding": "utf-8",
                },
            },
            "loggers": _logger_policy(logger_levels),
            "root": {"level": level, "handlers": ["console", "runtime_file"]},
        }
    )
    logging.getLogger(__name__).debug(
        "Logging configured (level=%s, file=%s, overrides=%s)", level, runtime_log, dict(logger_levels or {})
    )
    return runtime_log


__all__ = ["configure_logging"]
