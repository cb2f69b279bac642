"""
Logging configuration for the leave engine.

Timestamps are rendered in the business timezone (settings.TZ), the same clock that
decides "today" for notice checks and accrual periods.
"""
import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo

from app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


class BusinessTimeFormatter(logging.Formatter):
    """Formats record times in a fixed timezone instead of the host's local time."""

    def __init__(self, fmt: str, tz_name: str):
        super().__init__(fmt)
        self.tz = ZoneInfo(tz_name)

    def formatTime(self, record, datefmt=None):
        stamp = datetime.fromtimestamp(record.created, self.tz)
        return stamp.strftime(datefmt or "%Y-%m-%d %H:%M:%S%z")


def setup_logging() -> None:
    """
    Configure Python logging based on settings

    Sets up:
    - One stdout handler on the root logger (calling again replaces it)
    - Log level from settings.LOG_LEVEL; DEBUG also shows every balance ledger write
    - Quieter third-party loggers (uvicorn access, SQLAlchemy engine)
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "leave_engine", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(BusinessTimeFormatter(LOG_FORMAT, settings.TZ))
    handler.leave_engine = True
    root.addHandler(handler)
    root.setLevel(log_level)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s env=%s tz=%s", settings.LOG_LEVEL, settings.APP_ENV, settings.TZ)
