"""Logging setup for MedTrack.

Every record carries the id of the HTTP request that produced it, so the
reminder stream, the store poller and the write path can be correlated in
one log line format.
"""

from __future__ import annotations

import contextvars
import logging

from medtrack.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s request_id=%(request_id)s"

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)


def current_request_id() -> str:
    return request_id_var.get() or "-"


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` onto records that do not carry one yet."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = getattr(record, "request_id", None) or current_request_id()
        return True


def configure_logging(level: str | None = None) -> None:
    """Configure root logging and the ``medtrack`` logger tree.

    SQLAlchemy engine logging follows ``database_echo`` so SQL only shows up
    when asked for.
    """
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
    request_filter = RequestIdFilter()
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(request_filter)

    logging.getLogger("medtrack").setLevel(getattr(logging, level_name, logging.INFO))
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
