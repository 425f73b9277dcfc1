import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "plughost"


class LogFormat(Enum):
    PRETTY = "pretty"
    JSON = "json"


# ANSI color codes
RESET = "\033[0m"
COLORS = {
    "DEBUG": "\033[37m",   # White
    "INFO": "\033[36m",    # Cyan
    "WARNING": "\033[33m", # Yellow
    "ERROR": "\033[31m",   # Red
    "CRITICAL": "\033[41m\033[97m",  # White on Red background
    "TIME": "\033[90m",    # Gray for timestamps
    "MODULE": "\033[35m",  # Magenta
    "MESSAGE": "\033[0m",  # Default
}

_STD_RECORD_KEYS = frozenset((
    "name", "args", "msg", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "taskName", "message",
))


# ----------------------------- Formatters -----------------------------

class PrettyColoredFormatter(logging.Formatter):
    """
    Pretty, human-readable, colored log formatter.
    Format:
    2025-08-13 14:35:12.345 UTC | INFO     | version_resolver:123 | Loaded plugin 'demo'
    """

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _paint(self, key: str, text: str) -> str:
        if not self.use_color:
            return text
        return f"{COLORS.get(key, '')}{text}{RESET}"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        timestamp_colored = self._paint("TIME", f"{timestamp} UTC")
        level_name_colored = self._paint(record.levelname, f"{record.levelname:<8}")
        location_colored = self._paint("MODULE", f"{record.module}:{record.lineno}")
        message_colored = self._paint("MESSAGE", record.getMessage())

        if record.exc_info:
            message_colored += "\n" + self.formatException(record.exc_info)

        return f"{timestamp_colored} | {level_name_colored} | {location_colored} | {message_colored}"


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # Merge extra attributes
        for k, v in record.__dict__.items():
            if k in _STD_RECORD_KEYS:
                continue
            try:
                json.dumps(v)
                base[k] = v
            except (TypeError, ValueError):
                base[k] = str(v)
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, separators=(",", ":"))


class BulletReplacingFilter(logging.Filter):
    """Some Windows consoles render the bullet character as BEL and beep."""

    BULLET = "•"
    REPLACEMENT = "·"

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if self.BULLET in message:
            record.msg = message.replace(self.BULLET, self.REPLACEMENT)
            record.args = None
        return True


# ----------------------------- Setup -----------------------------

@dataclass(frozen=True)
class LogSettings:
    vendor: str = "plughost"
    application: str = "Plugin Host"
    module: str = "plughost"
    log_root: Optional[str] = None
    verbose: bool = False


def _platform_log_base() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Logs"
    return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))


def resolve_log_directory(settings: LogSettings) -> Path:
    """``<log_root>/<vendor>/<application>/logs``, with a per-platform default root."""
    base = Path(settings.log_root) if settings.log_root else _platform_log_base()
    return base / settings.vendor / settings.application / "logs"


def setup_logging(
    settings: LogSettings = LogSettings(),
    level: str = "INFO",
    log_format: str = LogFormat.PRETTY.value,
    file_output: bool = True,
) -> logging.Logger:
    """
    Configure the ``plughost`` logger.

    Console output is at ``level`` (DEBUG when verbose); the log file, when
    enabled, always receives DEBUG records as JSON.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    console_level = logging.DEBUG if settings.verbose else getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(console_level)

    log_format = log_format.lower()
    if log_format == LogFormat.PRETTY.value:
        handler.setFormatter(PrettyColoredFormatter(use_color=sys.stdout.isatty()))
    elif log_format == LogFormat.JSON.value:
        handler.setFormatter(JsonFormatter())
    else:
        raise ValueError(f"Unknown log format: {log_format}")

    if sys.platform == "win32":
        handler.addFilter(BulletReplacingFilter())

    handlers = [handler]

    if file_output:
        log_dir = resolve_log_directory(settings)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
            file_handler = logging.FileHandler(log_dir / f"{settings.module}_{stamp}.log", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JsonFormatter())
            handlers.append(file_handler)
        except OSError as e:
            sys.stderr.write(f"Cannot write log files to {log_dir}: {e}\n")

    for old in logger.handlers:
        old.close()
    logger.handlers = handlers
    logger.propagate = False
    return logger
