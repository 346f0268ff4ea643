"""Logging setup for the command line."""

import logging
import sys
from typing import Union

from rich.console import Console
from rich.logging import RichHandler


PACKAGE_LOGGER = "ecdh_files_cli"


def configure_logging(level: Union[int, str] = logging.WARNING, use_rich: bool = True) -> logging.Logger:
    """
    Install the single handler on the package logger.

    Library modules only create loggers. Calling this again replaces the
    handler instead of adding a second one.

    Args:
        level: Logging level as a number or a name such as "DEBUG";
            unknown names fall back to WARNING
        use_rich: Log through a rich handler instead of plain stderr lines

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if use_rich:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            show_time=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    logger.addHandler(handler)
    return logger
