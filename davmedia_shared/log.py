"""
Logging for the scan service: one stream handler per logger, request-id
correlation and JSON lines for scan lifecycle events.
"""
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Final

LOGGER_ROOT: Final[str] = "davmedia"
LINE_FORMAT: Final[str] = "%(asctime)s %(levelname)-7s %(name)s%(rid)s: %(message)s"

SUCCESS_LEVEL: Final[int] = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class CorrelationFilter(logging.Filter):
    """Copy the current request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        rid = request_id_var.get("")
        record.request_id = rid
        record.rid = f" [{rid}]" if rid else ""
        return True


def _short_name(name: str) -> str:
    if name == "__main__":
        return "main"
    head, _, tail = name.partition(".")
    if head in ("davmedia_backend", "davmedia_shared") and tail:
        return tail
    return name


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Logger named `davmedia.<module>` with its own handler.

    The first call for a name installs the handler and stops propagation;
    later calls return the same logger.
    """
    logger = logging.getLogger(f"{LOGGER_ROOT}.{_short_name(name)}")
    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())
    if level is not None:
        logger.setLevel(level)
    if not logger.handlers:
        if level is None:
            logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LINE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def log_success(logger: logging.Logger, message: str) -> None:
    logger.log(SUCCESS_LEVEL, message)


def log_structured(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Emit `{"message", "timestamp", "context"}` as one JSON line."""
    payload = {
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "context": context,
    }
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
