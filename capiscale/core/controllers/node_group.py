"""
Node-group facade consumed by the autoscaling decision loop.
"""

from __future__ import annotations

import logging

from capiscale.core.controllers.scalable_resource import ScalableResource

logger = logging.getLogger(__name__)


class NodeGroup:
    """Bounds-checked resize operations on top of one scalable resource."""

    def __init__(self, scalable_resource: ScalableResource):
        self.scalable_resource = scalable_resource

    @property
    def id(self) -> str:
        return self.scalable_resource.id

    def min_size(self) -> int:
        return self.scalable_resource.min_size()

    def max_size(self) -> int:
        return self.scalable_resource.max_size()

    def target_size(self) -> int:
        return self.scalable_resource.replicas()

    def increase_size(self, delta: int) -> None:
        """Grow by ``delta`` (> 0) without crossing the declared maximum."""
        if delta <= 0:
            raise ValueError("size increase must be positive")
        size = self.target_size()
        desired = size + delta
        if desired > self.max_size():
            raise ValueError(f"size increase too large - desired:{desired} max:{self.max_size()}")
        logger.debug("NodeGroup[%s] increase %d -> %d", self.id, size, desired)
        self.scalable_resource.set_size(desired)

    def decrease_target_size(self, delta: int) -> None:
        """Shrink by ``-delta`` (delta < 0) without crossing the declared minimum."""
        if delta >= 0:
            raise ValueError("size decrease must be negative")
        size = self.target_size()
        desired = size + delta
        if desired < self.min_size():
            raise ValueError(f"size decrease too large - desired:{desired} min:{self.min_size()}")
        logger.debug("NodeGroup[%s] decrease %d -> %d", self.id, size, desired)
        self.scalable_resource.set_size(desired)

    def debug(self) -> str:
        return f"{self.id} (min: {self.min_size()}, max: {self.max_size()}, replicas: {self.target_size()})"

    def __repr__(self) -> str:
        return f"NodeGroup({self.id})"
