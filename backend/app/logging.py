"""structlog setup shared by the API process and the Temporal worker.

Development gets the coloured console renderer; every other environment emits
one JSON object per line. Set LOG_FILE to also append the lines to a file.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

from app.config import settings


class _FileMirror:
    """File-like sink that writes to stdout and mirrors into a log file.

    A log file that cannot be opened or written is dropped with a warning on
    stderr; stdout keeps working.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._file: IO[str] | None = None
        try:
            self._file = open(path, "a")  # noqa: SIM115
        except OSError as exc:
            self._disable(f"could not open log file {path!r}: {exc}")

    def _disable(self, reason: str) -> None:
        self._file = None
        print(f"WARNING: {reason}; logging to stdout only.", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError) as exc:
            self._disable(f"write to {self._path!r} failed: {exc}")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError) as exc:
            self._disable(f"flush of {self._path!r} failed: {exc}")


def _level() -> int:
    level = logging.getLevelName(settings.log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def _processors(service: str) -> list[Any]:
    def add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service,
    ]
    if settings.environment == "development":
        return [*shared, structlog.dev.ConsoleRenderer()]
    return [
        *shared,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(service: str = "api") -> None:
    """Configure structlog for one process; `service` tags every log line."""
    if settings.log_file:
        # PrintLoggerFactory only needs write() and flush()
        factory = structlog.PrintLoggerFactory(file=_FileMirror(settings.log_file))  # type: ignore[arg-type]
    else:
        factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=_processors(service),
        wrapper_class=structlog.make_filtering_bound_logger(_level()),
        context_class=dict,
        logger_factory=factory,
        cache_logger_on_first_use=True,
    )
