"""
Logging setup.

All modules log through children of the "cursor_usage" logger; the CLI
attaches a rich console handler once at startup.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "cursor_usage"


def configure_logging(level: str = "INFO", console: Optional[Console] = None) -> logging.Logger:
    """Attach a rich handler to the package logger.

    Calling this again replaces the previous handler instead of stacking
    a second one.

    Args:
        level: Log level name
        console: Console to log to (defaults to stderr)

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger
