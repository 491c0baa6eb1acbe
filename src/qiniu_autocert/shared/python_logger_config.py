"""Console logging for qiniu-auto-cert.

Environment Variables:
    LOG_LEVEL: Logging level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
    PYTHON_LOG_FORMAT: Log message format (default: DEFAULT_LOG_FORMAT)
"""

import os
import sys
import logging
from typing import Optional, TextIO

from .log_levels import TRACE

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = [
    'apscheduler.scheduler',
    'apscheduler.executors.default',
    'httpx',
    'httpcore',
    'urllib3',
    'acme.client',
    'lexicon',
    'tldextract',
    'filelock',
]

LEVEL_COLORS = {
    TRACE: '\033[90m',             # Dark gray
    logging.DEBUG: '\033[36m',     # Cyan
    logging.INFO: '\033[32m',      # Green
    logging.WARNING: '\033[33m',   # Yellow
    logging.ERROR: '\033[31m',     # Red
    logging.CRITICAL: '\033[35m',  # Magenta
}
RESET = '\033[0m'


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name of each record."""

    def format(self, record):
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"{color}{levelname}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def resolve_level(log_level: str) -> int:
    """Map a level name (including TRACE) to its numeric value."""
    log_level = log_level.upper()
    if log_level == 'TRACE':
        return TRACE
    return getattr(logging, log_level, logging.INFO)


def setup_python_logging(
    log_level: Optional[str] = None,
    use_colors: bool = True,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Send all log records to one console handler.

    Args:
        log_level: Logging level (if None, reads LOG_LEVEL)
        use_colors: Color level names when ``stream`` is a terminal
        log_format: Record format (if None, reads PYTHON_LOG_FORMAT)
        stream: Output stream, stdout by default

    Returns:
        Configured root logger
    """
    log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_format = log_format or os.getenv('PYTHON_LOG_FORMAT', DEFAULT_LOG_FORMAT)
    stream = stream or sys.stdout
    level = resolve_level(log_level)
    colored = use_colors and stream.isatty()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(log_format) if colored else logging.Formatter(log_format))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)
    silence_noisy_loggers(level)

    root_logger.debug(f"Logging configured: level={log_level}, colors={colored}")
    return root_logger


def silence_noisy_loggers(level: int = logging.INFO):
    """Keep third-party loggers at WARNING unless we are debugging."""
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
