"""Logging for sqlvec.

Loggers live under the ``sqlvec`` namespace. Records emitted while a query
function runs are tagged with the function's name through
:func:`query_context`, and events logged with :func:`log_event` carry their
own fields (command, result shape, value and row counts) so that
:class:`QueryLogFormatter` can render them as one JSON object per line.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from sqlvec.utils.serializers import to_json

if TYPE_CHECKING:
    from collections.abc import Iterator
    from logging import LogRecord

__all__ = (
    "ROOT_LOGGER_NAME",
    "QueryLogFormatter",
    "QueryNameFilter",
    "configure_logging",
    "current_query",
    "get_logger",
    "log_event",
    "query_context",
)

ROOT_LOGGER_NAME = "sqlvec"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(query)s] %(message)s"

_current_query: ContextVar[str | None] = ContextVar("sqlvec_query", default=None)
_installed_handler: logging.Handler | None = None


def current_query() -> str | None:
    """Name of the query function running in the current context, if any."""
    return _current_query.get()


@contextmanager
def query_context(name: str) -> Iterator[None]:
    """Tag records logged inside the block with query ``name``.

    Contexts nest; leaving one restores the enclosing name.
    """
    token = _current_query.set(name)
    try:
        yield
    finally:
        _current_query.reset(token)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log a named event with structured fields.

    The plain message reads ``event key=value ...``. The event name and the
    fields are also attached to the record as ``event`` and ``event_fields``.
    """
    if not logger.isEnabledFor(level):
        return
    message = " ".join([event, *(f"{key}={value!r}" for key, value in fields.items())])
    logger.log(level, message, extra={"event": event, "event_fields": fields}, stacklevel=2)


class QueryNameFilter(logging.Filter):
    """Adds the running query's name to records as ``query``."""

    def filter(self, record: LogRecord) -> bool:
        if getattr(record, "query", None) is None and (name := current_query()) is not None:
            record.query = name
        return True


class QueryLogFormatter(logging.Formatter):
    """Renders records as JSON objects.

    Events contribute their name and fields; other records contribute their
    formatted message.
    """

    def format(self, record: LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
        }
        query = getattr(record, "query", None) or current_query()
        if query is not None:
            entry["query"] = query

        event = getattr(record, "event", None)
        if event is not None:
            entry["event"] = event
            entry.update(getattr(record, "event_fields", {}))
        else:
            entry["message"] = record.getMessage()

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return to_json(entry)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger under the ``sqlvec`` namespace.

    Args:
        name: Dotted name below ``sqlvec``; the root sqlvec logger when omitted

    Returns:
        Logger that tags records with the running query's name
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    logger = logging.getLogger(name)
    if not any(isinstance(f, QueryNameFilter) for f in logger.filters):
        logger.addFilter(QueryNameFilter())
    return logger


def configure_logging(
    level: int | str = "INFO", structured: bool = True, handler: logging.Handler | None = None
) -> logging.Handler:
    """Send sqlvec logs to a single handler.

    Calling it again replaces the handler installed by the previous call and
    leaves any other handlers on the ``sqlvec`` logger alone.

    Args:
        level: Level name or number for the ``sqlvec`` logger
        structured: JSON lines when True, plain text otherwise
        handler: Handler to install; a stderr stream handler by default

    Returns:
        The installed handler
    """
    global _installed_handler  # noqa: PLW0603

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    if _installed_handler is not None:
        root.removeHandler(_installed_handler)

    installed = handler if handler is not None else logging.StreamHandler(sys.stderr)
    installed.addFilter(QueryNameFilter())
    if structured:
        installed.setFormatter(QueryLogFormatter())
    else:
        installed.setFormatter(logging.Formatter(TEXT_FORMAT, defaults={"query": "-"}))
    root.addHandler(installed)
    root.propagate = False
    _installed_handler = installed
    return installed
