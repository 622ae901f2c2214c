"""Logging setup for the command line."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from authreport.helpers.console import err_console

LOGGER_NAME = "authreport"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Route ``authreport.*`` loggers to a rich console on stderr.

    Verbose runs log at DEBUG, others only show warnings. Calling it again
    replaces the handler instead of stacking a second one.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_path=verbose, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return logger
