"""Logging utilities for capiscale runtime components."""

from __future__ import annotations

import logging
import sys
from typing import Iterable, Optional


_HANDLER_NAME = "_capiscale_stream_handler"

# informer callbacks run on background threads; the thread name identifies the kind
_RUNTIME_FORMAT = "[%(levelname)s] [%(threadName)s] %(name)s: %(message)s"

_CLIENT_LOGGERS = ("kubernetes", "kubernetes.client.rest", "urllib3")


def configure_runtime_logging(level: int = logging.INFO, formatter: Optional[logging.Formatter] = None) -> None:
    """Attach (once) a stdout handler to the root logger and align its level."""
    root_logger = logging.getLogger()
    formatter = formatter or logging.Formatter(_RUNTIME_FORMAT)

    handler = next((h for h in root_logger.handlers if getattr(h, _HANDLER_NAME, False)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        setattr(handler, _HANDLER_NAME, True)
        root_logger.addHandler(handler)
    handler.setFormatter(formatter)
    handler.setLevel(level)

    if root_logger.level == logging.NOTSET or root_logger.level > level:
        root_logger.setLevel(level)


def quiet_client_logging(level: int = logging.WARNING, names: Iterable[str] = _CLIENT_LOGGERS) -> None:
    """Keep request-level chatter of the API client out of controller logs."""
    for name in names:
        logging.getLogger(name).setLevel(level)


def install_stdout_logger(level: int = logging.INFO, *, include_timestamp: bool = True, prefix: str = "capiscale") -> logging.Logger:
    """Attach a dedicated stream handler for demos / CLI scripts."""
    fmt = "%(asctime)s %(levelname)s: %(message)s" if include_timestamp else "%(levelname)s: %(message)s"
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
    logger = logging.getLogger(prefix)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
