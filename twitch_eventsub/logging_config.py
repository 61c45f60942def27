"""
Logging setup for the EventSub listener.

Console output is formatted by colorlog. Errors reported through
:func:`log_structured_error` share one line layout and are counted per
category so a summary can be logged at shutdown.
"""

import atexit
import logging
import os
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import colorlog

_LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-8s%(reset)s %(message_log_color)s%(message)s"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "magenta",
}


@dataclass
class _CategoryStats:
    count: int = 0
    last: dict[str, Any] = field(default_factory=dict)


class ErrorAggregator:
    """Counts reported errors per category and remembers the latest of each."""

    def __init__(self):
        self._stats: dict[str, _CategoryStats] = {}
        self._lock = threading.Lock()

    def record_error(self, error_type: str, message: str, context: dict[str, Any] | None = None) -> None:
        with self._lock:
            stats = self._stats.setdefault(error_type, _CategoryStats())
            stats.count += 1
            stats.last = {"timestamp": time.time(), "message": message, "context": context or {}}

    def get_error_summary(self) -> dict[str, Any]:
        """Category -> ``{"total_count": int, "last_occurrence": dict}``."""
        with self._lock:
            return {
                error_type: {"total_count": stats.count, "last_occurrence": dict(stats.last)}
                for error_type, stats in self._stats.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()

    def log_summary_report(self) -> None:
        summary = self.get_error_summary()
        if not summary:
            logging.info("No errors recorded in current session")
            return
        logging.warning("🚨 ERROR SUMMARY REPORT")
        for error_type, stats in sorted(summary.items()):
            logging.warning(
                f"  {error_type}: {stats['total_count']} total, "
                f"last: {stats['last_occurrence']['message']}"
            )


error_aggregator = ErrorAggregator()


def log_structured_error(
    error_type: str,
    message: str,
    exception: BaseException | None = None,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Log ``[TYPE] message | Exception: ... | Context: k=v`` and count it.

    Args:
        error_type: Category, e.g. 'signature', 'handler' or 'transport'.
        message: What went wrong.
        exception: The exception behind it, if any.
        context: Extra key/value pairs for debugging.
        level: Logging level, ERROR by default.
    """
    parts = [f"[{error_type.upper()}] {message}"]
    if exception:
        parts.append(f"Exception: {type(exception).__name__}: {str(exception)}")
    if context:
        parts.append("Context: " + " | ".join(f"{k}={v}" for k, v in context.items()))

    logging.getLogger("twitch_eventsub").log(level, " | ".join(parts))
    error_aggregator.record_error(error_type, message, context)


class LoggerConfigurator:
    """Installs the colored console formatter on the root logger.

    The level is DEBUG when the ``DEBUG`` environment variable is ``true``,
    ``1`` or ``yes``, INFO otherwise; ``config["level"]`` overrides both.
    """

    def __init__(self, config=None):
        self.config = config or {}

    def configure(self):
        debug_env = os.environ.get("DEBUG", "").lower()
        log_level = self.config.get(
            "level", logging.DEBUG if debug_env in ("true", "1", "yes") else logging.INFO
        )

        formatter = colorlog.ColoredFormatter(
            _LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors=_LOG_COLORS,
            secondary_log_colors={"message": {"ERROR": "red", "CRITICAL": "magenta"}},
            reset=True,
        )
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logging.basicConfig(level=log_level, handlers=[handler])

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        for h in root_logger.handlers:
            h.setFormatter(formatter)

        # The front-end logs every request itself after the response is sent
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

        atexit.register(self._log_final_error_summary)

    def _log_final_error_summary(self):
        try:
            logging.info("📊 Final error summary before shutdown:")
            error_aggregator.log_summary_report()
        except Exception as e:
            logging.error(f"Failed to log final error summary: {e}")
