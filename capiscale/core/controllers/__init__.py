"""
Public facing controller facades for capiscale.
"""

from .controller import Controller  # noqa: F401
from .node_group import NodeGroup  # noqa: F401
from .scalable_resource import ScalableResource  # noqa: F401

__all__ = ["Controller", "NodeGroup", "ScalableResource"]
