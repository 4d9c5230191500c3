"""
Core package bootstrap for the capiscale runtime.

Re-exports the primary façade classes so callers can simply do::

    from capiscale.core import Controller
"""

from __future__ import annotations

from capiscale.core.controllers import Controller, NodeGroup, ScalableResource

__all__ = ["Controller", "NodeGroup", "ScalableResource"]
