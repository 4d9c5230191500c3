"""
capiscale: node-group abstraction over Cluster API scalable resources.

This module exposes high-level entry points while keeping heavy dependencies
lazy-imported so packaging tools do not require the Kubernetes client during
metadata builds.
"""

from __future__ import annotations

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version

__all__ = [
    "Controller",
    "ControllerConfig",
    "NodeGroup",
    "ScalableResource",
    "UnstructuredObject",
    "__version__",
]


_FALLBACK_VERSION = "0.1.0"

try:
    __version__ = version("capiscale-core")
except PackageNotFoundError:
    __version__ = _FALLBACK_VERSION


_LAZY_TARGETS = {
    "Controller": ("capiscale.core.controllers", "Controller"),
    "ControllerConfig": ("capiscale.core.config", "ControllerConfig"),
    "NodeGroup": ("capiscale.core.controllers", "NodeGroup"),
    "ScalableResource": ("capiscale.core.controllers", "ScalableResource"),
    "UnstructuredObject": ("capiscale.core.entities", "UnstructuredObject"),
}


def __getattr__(name: str):
    """Dynamically load public symbols to avoid importing optional deps early."""
    target = _LAZY_TARGETS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

    module_name, attribute = target
    module = import_module(module_name)
    value = getattr(module, attribute)
    globals()[name] = value  # cache for subsequent lookups
    return value
