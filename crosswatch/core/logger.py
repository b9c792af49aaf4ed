import logging
import os
import sys
from typing import Optional

from crosswatch.core.config import settings

ROOT_LOGGER = "crosswatch"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Install console and optional file handlers on the package root logger.

    Every Logger(name) is a child of this root, so handlers live in one place.
    Calling again replaces the handlers rather than stacking them.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        if not os.path.isdir(os.path.dirname(log_file) or "."):
            root.warning(f"Log directory for {log_file} does not exist; file logging disabled")
        else:
            try:
                file_handler = logging.FileHandler(log_file)
            except OSError as e:
                root.warning(f"Cannot open log file {log_file}: {e}")
            else:
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

    _configured = True
    return root


class Logger:
    """Named component logger under the crosswatch root."""

    def __init__(self, name: str):
        if not _configured:
            configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
        self.logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")

    def info(self, msg: str):
        self.logger.info(msg)

    def warn(self, msg: str):
        self.logger.warning(msg)

    def error(self, msg: str, exc: Exception = None):
        self.logger.error(msg, exc_info=exc)

    def debug(self, msg: str):
        self.logger.debug(msg)
