"""Logging configuration for Bedrock Usage.

Progress and warnings go to stderr through a Rich handler so that JSON and
CSV reports written to stdout stay machine-readable.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_NAME = "bedrock_usage"

NOISY_LOGGERS = [
    "boto3",
    "botocore",
    "urllib3",
]

_console = Console(stderr=True)


def setup_logging(level: str = "INFO", quiet_third_party: bool = True) -> None:
    """Configure the package logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        quiet_third_party: If True, suppress AWS SDK chatter below WARNING.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    package_logger = logging.getLogger(PACKAGE_NAME)
    package_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    package_logger.handlers = []

    console_handler = RichHandler(
        console=_console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    console_handler.setLevel(numeric_level)
    package_logger.addHandler(console_handler)

    if quiet_third_party:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    package_logger.propagate = False
    package_logger.debug("Logging configured: level=%s", level)
