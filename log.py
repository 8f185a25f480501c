import logging
import sys
from typing import List, Optional

from config import settings

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_handlers: List[logging.Handler] = []


def setup_logging(log_file: Optional[str] = None, level: Optional[str] = None, console: bool = True) -> None:
    """Send log records to the log file and mirror them to stdout.

    Safe to call more than once; handlers are only installed the first time
    until ``shutdown_logging`` is called. ``console=False`` keeps stdout clean
    for machine-readable output.
    """
    if _handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: List[logging.Handler] = [logging.FileHandler(log_file or settings.log_file, mode="a", encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
        _handlers.append(handler)


def shutdown_logging() -> None:
    """Detach and close the handlers installed by ``setup_logging``."""
    root = logging.getLogger()
    while _handlers:
        handler = _handlers.pop()
        root.removeHandler(handler)
        handler.close()
