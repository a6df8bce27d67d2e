"""Logger facade.

``get_logger`` is what modules use; ``configure_logging`` is called once by
the process entrypoint (the API lifespan) to install console and file
handlers.
"""

import logging
import os

from rich.logging import RichHandler

from .constants import LOG_LEVEL_NAME

__all__ = ["get_logger", "configure_logging"]

_NOISY_LOGGERS = {
    "asyncpg": logging.WARNING,
    "alembic": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiogram": logging.INFO,
    "aiogram.event": logging.INFO,
}

_configured = False


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or __name__)


def configure_logging(level_name: str | None = None, log_file: str | None = None) -> None:
    """Install Rich console output plus a WARNING+ file log (idempotent)."""
    global _configured
    if _configured:
        return

    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_level=True,
        show_path=False,
        log_time_format="%H:%M:%S",
    )
    handlers: list[logging.Handler] = [console_handler]

    log_file = log_file if log_file is not None else os.getenv("LOG_FILE", "studio.log")
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)

    env_level = (level_name or LOG_LEVEL_NAME).strip().upper()
    level = getattr(logging, env_level, logging.INFO)

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers)

    for name, lvl in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(lvl)

    _configured = True
