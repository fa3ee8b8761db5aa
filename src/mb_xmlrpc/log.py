"""Logging configuration for mb-xmlrpc."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def setup_logging(log_path: Path, *, debug: bool = False) -> None:
    """Attach a rotating file handler to the package logger.

    Records carry the thread name because transport notifications may arrive on a
    thread other than the submitting one. Result dumps are logged at DEBUG, so they
    are only written with ``debug``.

    Idempotent: skips if a handler is already attached.
    """
    logger = logging.getLogger("mb_xmlrpc")
    if logger.handlers:
        return

    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.addHandler(handler)
