"""
log.py - Clock-stamped diagnostic output.

Every line is prefixed with the wall-clock time (day/month/year and
hour:minute:second). Lines are written through a single logging handler,
whose lock keeps concurrent writers from interleaving.
"""

import logging
import sys

from . import config


def create_formatter():
    return logging.Formatter(config.LOG_FORMAT, datefmt=config.LOG_DATE_FORMAT)


def configure_logging(stream=None, level=logging.INFO):
    """
    Install the clock-stamped handler on the root logger.

    Args:
        stream: Output stream (defaults to stdout).
        level (int): Minimum level to emit.

    Returns:
        logging.Handler: The installed handler.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()  # prevent duplicate lines if called more than once

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(create_formatter())
    root.addHandler(handler)
    return handler
