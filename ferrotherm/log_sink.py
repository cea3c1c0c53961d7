"""
ferrotherm/log_sink.py
======================
Ferrofluid Thermal-to-Electric Control Loop — Log Stream

Append-only, timestamped event lines tagged STATUS, WARNING, ERROR or
DIAGNOSTIC.  Built on the standard :mod:`logging` package; STATUS and
DIAGNOSTIC are registered as named levels so the tag is the level name.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

STATUS = 25
DIAGNOSTIC = 15

logging.addLevelName(STATUS, "STATUS")
logging.addLevelName(DIAGNOSTIC, "DIAGNOSTIC")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOGGER_NAME = "ferrotherm"


class LogSink:
    """Tagged event writer shared by all components of one control loop."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(LOGGER_NAME)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def status(self, msg: str, *args) -> None:
        self._logger.log(STATUS, msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._logger.warning(msg, *args)

    def error(self, msg: str, *args) -> None:
        self._logger.error(msg, *args)

    def diagnostic(self, msg: str, *args) -> None:
        self._logger.log(DIAGNOSTIC, msg, *args)


def configure_logging(level: int = DIAGNOSTIC, stream=None) -> logging.Logger:
    """Attach one stream handler to the package logger.

    Calling it again only updates the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not any(getattr(h, "_ferrotherm", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._ferrotherm = True
        logger.addHandler(handler)
    return logger
