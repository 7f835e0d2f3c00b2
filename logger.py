"""
Logging for the voice relay.

Every module asks for an ``AppLogger`` through ``get_logger(__name__)``.
Keyword arguments given to a log call are carried on the record as
structured fields: rendered inline on the console and as a ``data`` object
in the JSON file sink (enabled with ``LOG_FILE``).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

FIELDS_ATTR = "extra_data"
MAX_CONSOLE_VALUE = 160


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, FIELDS_ATTR, None) or {}


def _has_exception(record: logging.LogRecord) -> bool:
    return bool(record.exc_info) and record.exc_info[0] is not None


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        fields = _fields(record)
        if fields:
            entry["data"] = fields

        if _has_exception(record):
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        # Transcripts are Devanagari; keep them readable in the file
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured single-line output for terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{when} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        fields = _fields(record)
        if fields:
            line += " | " + ", ".join(f"{key}={self._shorten(value)}" for key, value in fields.items())

        if _has_exception(record):
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def _shorten(value: Any) -> str:
        text = str(value)
        if len(text) > MAX_CONSOLE_VALUE:
            return text[:MAX_CONSOLE_VALUE] + "..."
        return text


class AppLogger:
    """Wrapper over a stdlib logger whose keyword arguments become structured fields."""

    _instances: Dict[str, "AppLogger"] = {}

    def __init__(self, name: str, level: Optional[str] = None):
        self.name = name
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self._configure(level or os.getenv("LOG_LEVEL", "INFO"))

    def _configure(self, level: str) -> None:
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ConsoleFormatter())
        self.logger.addHandler(console)

        log_file = os.getenv("LOG_FILE")
        if log_file:
            sink = logging.FileHandler(log_file, encoding="utf-8")
            sink.setFormatter(StructuredFormatter())
            self.logger.addHandler(sink)

        self.logger.propagate = False

    def _log(self, level: int, message: str, fields: Dict[str, Any], exc_info: bool = False) -> None:
        if not self.logger.isEnabledFor(level):
            return
        # stacklevel points file/line at the code that called debug()/info()/...
        self.logger.log(level, message, exc_info=exc_info, extra={FIELDS_ATTR: fields}, stacklevel=3)

    def debug(self, message: str, **fields) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, exc_info: bool = False, **fields) -> None:
        self._log(logging.ERROR, message, fields, exc_info=exc_info)

    def critical(self, message: str, exc_info: bool = False, **fields) -> None:
        self._log(logging.CRITICAL, message, fields, exc_info=exc_info)

    def request(self, method: str, path: str, status: int, duration_ms: float, **fields) -> None:
        """HTTP access line."""
        self._log(
            logging.INFO,
            f"{method} {path} -> {status}",
            {"method": method, "path": path, "status": status, "duration_ms": round(duration_ms, 2), **fields},
        )

    def provider_call(self, provider: str, operation: str, success: bool, duration_ms: float, **fields) -> None:
        """Outcome and timing of one call to Deepgram, Gemini or ElevenLabs."""
        self._log(
            logging.INFO if success else logging.WARNING,
            f"Provider [{provider}] {operation}: {'SUCCESS' if success else 'FAILED'}",
            {
                "provider": provider,
                "operation": operation,
                "success": success,
                "duration_ms": round(duration_ms, 2),
                **fields,
            },
        )


def get_logger(name: str) -> AppLogger:
    """Return the shared AppLogger for ``name``."""
    if name not in AppLogger._instances:
        AppLogger._instances[name] = AppLogger(name)
    return AppLogger._instances[name]


def log_function_call(logger: Optional[AppLogger] = None):
    """Decorator logging entry and exit at DEBUG and any exception at ERROR."""
    def decorator(func):
        log = logger or get_logger(func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            log.debug(f"-> {func.__qualname__}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error(f"{func.__qualname__} raised {type(e).__name__}: {e}", exc_info=True)
                raise
            log.debug(f"<- {func.__qualname__}")
            return result

        return wrapper
    return decorator
