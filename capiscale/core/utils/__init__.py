"""Utility helpers for capiscale."""

from .logging import configure_runtime_logging, install_stdout_logger, quiet_client_logging  # noqa: F401

__all__ = [
    "configure_runtime_logging",
    "install_stdout_logger",
    "quiet_client_logging",
]
