# krishi/core/logging_config.py - Console logging shared by the API, the CLI and the warm-up job
import logging
import sys
from typing import Optional, TextIO, Union

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - [%(funcName)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("uvicorn.access", "aiohttp", "httpx", "httpcore", "grpc", "google.auth")

GREY = "\x1b[38;21m"
RESET = "\x1b[0m"
LEVEL_COLOURS = {
    logging.DEBUG: GREY,
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[31;1m",
}


class LevelColourFormatter(logging.Formatter):
    """Tints the level name of a copy of the record."""

    def format(self, record):
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{LEVEL_COLOURS.get(record.levelno, GREY)}{record.levelname}{RESET}"
        return super().format(record)


def setup_logging(level: Union[int, str] = logging.INFO, stream: Optional[TextIO] = None):
    """Send every log to one console handler; colours only when writing to a terminal."""
    stream = stream or sys.stdout
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    is_terminal = hasattr(stream, "isatty") and stream.isatty()
    formatter_class = LevelColourFormatter if is_terminal else logging.Formatter

    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(formatter_class(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
