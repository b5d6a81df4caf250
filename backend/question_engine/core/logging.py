"""JSON log output. Modules log with extra={"event": ..., ...} fields."""

import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from question_engine.core.config import settings

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record with level, logger and call site."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.update(
            timestamp=self.formatTime(record, self.datefmt),
            level=record.levelname,
            logger=record.name,
            module=record.module,
            function=record.funcName,
        )
        log_record.pop("asctime", None)


def setup_logging(level: str | None = None) -> None:
    """Replace root handlers with a single stdout JSON handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        CustomJsonFormatter("%(timestamp)s %(level)s %(logger)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
