"""
Logging for uart-com.

Messages are formatted at the call site and handed to one method per
severity level (trace, info, warning, error). Everything is routed through
the standard ``logging`` package under the ``uart_com`` logger.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Optional, List

if TYPE_CHECKING:
    from .config import Config

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")

LOGGER_NAME = "uart_com"
LOG_FORMAT = "[%(created)d] [%(levelname)s] %(message)s"

_installed_handlers: List[logging.Handler] = []


class Log:
    """
    Four-level logging interface used by the framer, reader and port opener.
    Args:
        logger (logging.Logger, optional): Backing logger (default: ``uart_com``)
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(LOGGER_NAME)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def trace(self, message: str) -> None:
        self._logger.log(TRACE, message)

    def info(self, message: str) -> None:
        self._logger.info(message)

    def warning(self, message: str) -> None:
        self._logger.warning(message)

    def error(self, message: str) -> None:
        self._logger.error(message)


def get_log(name: Optional[str] = None) -> Log:
    """Return a Log for ``uart_com`` or one of its children."""
    if name is None or name == LOGGER_NAME:
        return Log(logging.getLogger(LOGGER_NAME))
    if not name.startswith(LOGGER_NAME + "."):
        name = f"{LOGGER_NAME}.{name}"
    return Log(logging.getLogger(name))


def configure_logging(config: "Config") -> logging.Logger:
    """
    Install the console handler and, in debug mode, the persistent file mirror.
    Calling it again replaces the handlers installed by a previous call.
    Args:
        config (Config): Settings providing ``debug`` and ``log_file``
    Returns:
        logging.Logger: The configured ``uart_com`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in _installed_handlers:
        logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    _installed_handlers.append(console)

    if config.debug:
        mirror = logging.FileHandler(config.log_file, mode="a", encoding="utf-8", delay=True)
        mirror.setFormatter(formatter)
        _installed_handlers.append(mirror)

    for handler in _installed_handlers:
        logger.addHandler(handler)
    logger.setLevel(TRACE if config.debug else logging.INFO)
    logger.propagate = False
    return logger
