"""JSON logging configuration for the chat bridge."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        chat_id = getattr(record, "chat_id", None)
        if chat_id:
            log_data["chat_id"] = chat_id

        if hasattr(record, "context") and record.context:
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None) -> None:
    """Route every logger to stdout as JSON."""
    if level is None:
        from chatbridge.config import settings

        level = settings.log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"chatbridge.{name}")


class ChatLogger(logging.LoggerAdapter):
    """Adapter that stamps every record with the chat identifier it concerns.

    Extra per-call context is merged into the ``context`` field:

        log = ChatLogger(logger, chat_id)
        log.info("Tool called", context={"tool": name})
    """

    def __init__(self, logger: logging.Logger, chat_id: str):
        super().__init__(logger, {"chat_id": chat_id})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = kwargs.pop("context", None)
        extra = dict(self.extra)
        if context:
            extra["context"] = context
        kwargs["extra"] = extra
        return msg, kwargs
