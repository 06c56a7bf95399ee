"""Logging setup shared by the API process and background workers."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """
    Configure the root logger with a single stdout handler.

    Safe to call more than once; the handler is only installed the first time.
    Modules log through ``logging.getLogger(__name__)``.
    """
    root = logging.getLogger()
    root.setLevel(level)

    if not any(getattr(h, "_scrollwise", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        handler._scrollwise = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # The SQL echo from SQLAlchemy is controlled by settings.debug instead
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root
