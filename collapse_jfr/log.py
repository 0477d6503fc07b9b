"""
Logging setup: package loggers go to stderr through Rich, progress lines
stay on stdout.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "collapse_jfr"


def setup_logging(verbose: bool = False) -> logging.Logger:
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    handler.setLevel(level)
    logger.setLevel(level)
    logger.addHandler(handler)
    return logger
