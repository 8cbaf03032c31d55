import logging
import os
import sys
from datetime import datetime
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

PACKAGE_PREFIX = "deep_research"

# Keys kept at the top level of every record; everything else goes under "extra".
STANDARD_FIELDS = ("timestamp", "logger", "message", "level", "run_id")

DEFAULT_LOG_LEVEL = "INFO"
MAX_VALUE_LENGTH = 60
RUN_ID_DISPLAY_LENGTH = 8


# ============================================================================
# Processors
# ============================================================================


def _restructure_fields(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Rename "event" to "message" and move custom keys under "extra"."""
    event_dict["message"] = event_dict.pop("event", "")
    event_dict.setdefault("run_id", structlog.contextvars.get_contextvars().get("run_id", ""))

    extra = {key: event_dict.pop(key) for key in list(event_dict) if key not in STANDARD_FIELDS}
    if extra:
        event_dict["extra"] = extra
    if not event_dict["run_id"]:
        del event_dict["run_id"]
    return event_dict


class ConsoleRenderer:
    """One line per record: HH:MM:SS [LEVEL] module: message [k=v, ...] [run:abcd1234]"""

    def __call__(self, _: WrappedLogger, __: str, event_dict: EventDict) -> str:
        level = event_dict.get("level", "info").upper()
        logger_name = self.short_logger_name(event_dict.get("logger", ""))
        clock = self.clock(event_dict.get("timestamp", ""))
        extra = event_dict.get("extra", {})
        run_id = event_dict.get("run_id", "")

        line = f"{clock} [{level}] {logger_name}: {event_dict.get('message', '')}"
        if extra:
            line += " [" + ", ".join(f"{key}={self.truncate(value)}" for key, value in extra.items()) + "]"
        if run_id:
            line += f" [run:{run_id[:RUN_ID_DISPLAY_LENGTH]}]"
        return line

    @staticmethod
    def truncate(value: Any) -> str:
        text = str(value)
        if len(text) > MAX_VALUE_LENGTH:
            return f"{text[: MAX_VALUE_LENGTH - 3]}..."
        return text

    @staticmethod
    def clock(timestamp: str) -> str:
        if not timestamp:
            return ""
        try:
            return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).strftime("%H:%M:%S")
        except ValueError:
            return ""

    @staticmethod
    def short_logger_name(name: str) -> str:
        # "deep_research.search_executor" -> "search_executor"
        if name == PACKAGE_PREFIX or not name.startswith(f"{PACKAGE_PREFIX}."):
            return name
        return name[len(PACKAGE_PREFIX) + 1 :]


# ============================================================================
# Configuration
# ============================================================================


def configure_structlog(testing: bool = False) -> None:
    """Configure structlog: JSON lines in production, console lines when ``testing``."""
    level_name = os.environ.get("LOGGING_LEVEL", DEFAULT_LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", level=level, stream=sys.stdout)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.contextvars.merge_contextvars,
            _restructure_fields,
            structlog.processors.TimeStamper(fmt="iso"),
            ConsoleRenderer() if testing else structlog.processors.JSONRenderer(),
        ],  # type: ignore[arg-type]
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


# ============================================================================
# Public API
# ============================================================================


def bind_run_context(run_id: str, **fields: Any) -> None:
    """Bind the run id and any run-scoped fields for every subsequent record."""
    structlog.contextvars.bind_contextvars(run_id=run_id, **fields)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_run_context() -> dict[str, Any]:
    return structlog.contextvars.get_contextvars()


def get_logger(name: str = "") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name or PACKAGE_PREFIX)  # type: ignore
