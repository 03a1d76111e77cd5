# chatrooms/core/logging.py

import logging
import os
import sys


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers and the level they are held at
LIBRARY_LEVELS = {
    "asyncpg": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def setup_logging() -> None:
    """
    Configure logging for the chat server.

    - Root level from LOG_LEVEL (default INFO); connects, joins, leaves and
      room reclamation are logged at INFO by the services
    - One stdout handler, so the container runtime collects the log
    - asyncpg chatter and per-request access lines held back, since every
      WebSocket frame would otherwise produce noise
    """
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, log_level_name, logging.INFO)

    # Uvicorn may have installed handlers already when it imports the app
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger for a chatrooms module, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
