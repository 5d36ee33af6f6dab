"""
Logging configuration for DoseCalc.

JSON lines for production, colored console lines for development. Level and
output style default to the LOG_LEVEL and JSON_LOGS settings.
"""

import logging
import sys
from typing import Any

import orjson

from dosecalc.core.config import settings

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Third-party loggers that are chatty below WARNING
_QUIET_LOGGERS = ("lark", "asyncio")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Extras passed with ``logger.warning("...", extra={"formula": expr})``
    land under the "extra" key. Values orjson cannot encode are written
    with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        return orjson.dumps(entry, default=str).decode("utf-8")


class ConsoleFormatter(logging.Formatter):
    """Readable single-line output with the level name colored by severity."""

    DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str | None = None, datefmt: str = "%Y-%m-%d %H:%M:%S"):
        super().__init__(fmt or self.DEFAULT_FORMAT, datefmt=datefmt)

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().formatMessage(record)

        # Color a copy; other handlers see the plain level name
        colored = logging.makeLogRecord(vars(record))
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().formatMessage(colored)


def setup_logging(
    log_level: str | None = None,
    json_logs: bool | None = None,
    log_format: str | None = None,
) -> None:
    """
    Configure the root logger with a single stdout handler.

    Replaces any handlers installed before, so calling it twice is safe.

    Args:
        log_level: Level name (default: settings.log_level)
        json_logs: Emit JSON lines (default: settings.json_logs)
        log_format: Format string for console output
    """
    level = (log_level or settings.log_level).upper()
    use_json = settings.json_logs if json_logs is None else json_logs

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter(log_format))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured", extra={"log_level": level, "json_logs": use_json}
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (usually __name__)."""
    return logging.getLogger(name)


class LoggerMixin:
    """Give a class a ``logger`` named ``<module>.<ClassName>``."""

    @property
    def logger(self) -> logging.Logger:
        cls = type(self)
        return logging.getLogger(f"{cls.__module__}.{cls.__qualname__}")
