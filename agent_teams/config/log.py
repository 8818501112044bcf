"""
Logging setup: rich console output plus an optional plain log file.
"""
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .settings import Settings

ROOT_LOGGER = "agent_teams"


def configure_logging(settings: Settings, console: Optional[Console] = None) -> logging.Logger:
    """
    Attach handlers to the package logger according to ``settings``.

    Logs go to stderr so they do not interleave with streamed agent output on
    stdout. Calling this again replaces the handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(settings.log_level.upper())
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    ))

    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
