from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """
    Structured-enough logging for ops users.

    Messages are written as ``event.name key=value`` pairs so they stay greppable
    once shipped to a log aggregator.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    handler.setFormatter(formatter)

    # Replace existing handlers to avoid duplicates under reload.
    root.handlers = [handler]

    # aio-pika and aiormq are chatty at INFO during reconnect storms.
    logging.getLogger("aiormq").setLevel(logging.WARNING)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
