"""Logging bootstrap for the gate service."""
from __future__ import annotations

import logging
import re
from logging.config import dictConfig
from pathlib import Path
from typing import Optional

_PIN_PATTERN = re.compile(r"(?<!\d)\d{6}(?!\d)")


class RedactPinFilter(logging.Filter):
    """Masks any standalone six-digit run in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _PIN_PATTERN.sub("******", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None, retention_days: int = 14) -> None:
    """Console plus a nightly rotated file, both passed through the PIN mask."""

    if log_dir is None:
        log_dir = Path(__file__).resolve().parents[2] / "logs"
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact_pin": {"()": RedactPinFilter},
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["redact_pin"],
                    "level": level,
                },
                "runtime_file": {
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "default",
                    "filters": ["redact_pin"],
                    "level": level,
                    "filename": str(log_dir / "eventgate-runtime.log"),
                    "when": "midnight",
                    "backupCount": max(int(retention_days), 1),
                    "utc": True,
                    "delay": True,
                    "encoding": "utf-8",
                },
            },
            "loggers": {
                "httpx": {"level": "WARNING"},
            },
            "root": {"level": level, "handlers": ["console", "runtime_file"]},
        }
    )


__all__ = ["configure_logging", "RedactPinFilter"]
