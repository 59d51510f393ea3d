import logging
from collections import deque
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, console: bool = True) -> logging.Logger:
    """
    Configure the "textproxy" logger.

    Args:
        level: Log level name
        log_file: Optional path of a rotating log file
        console: Attach a rich console handler

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("textproxy")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    if console:
        logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False))

    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


class DashboardLogHandler(logging.Handler):
    """Keeps the most recent records for the live dashboard."""

    def __init__(self, maxlen: int = 10, level: int = logging.INFO):
        super().__init__(level)
        self.records = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.records.append((record.levelname, self.format(record)))
        except Exception:
            self.handleError(record)
