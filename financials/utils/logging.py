"""Logger factory for the pipeline.

Structured context passed through ``extra=`` is rendered after the message
as ``key=value`` pairs, so file hashes, periods and counts stay visible in
plain console output.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class ContextFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields to the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            key: value for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES
        }
        if not context:
            return line

        rendered = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        head, newline, trace = line.partition("\n")
        return f"{head} | {rendered}{newline}{trace}"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
        level: Level override; defaults to the LOG_LEVEL environment variable, then INFO

    Returns:
        logging.Logger: Logger writing to stdout through ContextFormatter
    """
    logger = logging.getLogger(name)
    log_level = _resolve_level(level)
    logger.setLevel(log_level)

    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ContextFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(console_handler)
    for handler in logger.handlers:
        handler.setLevel(log_level)

    return logger
