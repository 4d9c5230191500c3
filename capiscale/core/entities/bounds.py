"""
Scaling bounds declared as annotations on a scalable resource.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional

from capiscale.core.errors import InvalidBoundsError

DEFAULT_API_GROUP = "cluster.x-k8s.io"

# Desired replicas travel as int32 on the scale subresource.
UNBOUNDED_MAX_SIZE = 2**31 - 1

_MIN_SIZE_SUFFIX = "cluster-api-autoscaler-node-group-min-size"
_MAX_SIZE_SUFFIX = "cluster-api-autoscaler-node-group-max-size"
_INTEGER_RE = re.compile(r"-?[0-9]+")


def min_size_annotation_key(group: str = DEFAULT_API_GROUP) -> str:
    return f"{group}/{_MIN_SIZE_SUFFIX}"


def max_size_annotation_key(group: str = DEFAULT_API_GROUP) -> str:
    return f"{group}/{_MAX_SIZE_SUFFIX}"


def _parse_size(key: str, raw: str) -> int:
    value = raw if isinstance(raw, str) else str(raw)
    if not _INTEGER_RE.fullmatch(value):
        raise InvalidBoundsError(f"annotation {key}={raw!r} is not a base-10 integer", operation="parse-bounds")
    return int(value, 10)


@dataclass(frozen=True)
class ScalingBounds:
    """Declared ``[min_size, max_size]`` for a node group."""

    min_size: int = 0
    max_size: int = UNBOUNDED_MAX_SIZE
    min_declared: bool = False
    max_declared: bool = False

    def __post_init__(self) -> None:
        if self.min_size < 0:
            raise InvalidBoundsError(f"min size must be non-negative, got {self.min_size}", operation="parse-bounds")
        if self.max_size < 0:
            raise InvalidBoundsError(f"max size must be non-negative, got {self.max_size}", operation="parse-bounds")
        if self.max_size > UNBOUNDED_MAX_SIZE:
            raise InvalidBoundsError(
                f"max size ({self.max_size}) exceeds the int32 replica limit {UNBOUNDED_MAX_SIZE}",
                operation="parse-bounds",
            )
        if self.max_size < self.min_size:
            raise InvalidBoundsError(
                f"max size ({self.max_size}) is less than min size ({self.min_size})",
                operation="parse-bounds",
            )

    @property
    def has_declared_bounds(self) -> bool:
        """True when both annotations are present (the node-group opt-in)."""
        return self.min_declared and self.max_declared

    def contains(self, size: int) -> bool:
        return self.min_size <= size <= self.max_size

    @classmethod
    def from_annotations(
        cls,
        annotations: Optional[Mapping[str, str]],
        group: str = DEFAULT_API_GROUP,
    ) -> "ScalingBounds":
        """
        Parse bounds from annotations.

        Either side may be absent independently: a missing min means 0 and a
        missing max means :data:`UNBOUNDED_MAX_SIZE`.

        Raises:
            InvalidBoundsError: non-integer value, negative size, or min > max.
        """
        annotations = annotations or {}
        min_key = min_size_annotation_key(group)
        max_key = max_size_annotation_key(group)

        min_size = 0
        max_size = UNBOUNDED_MAX_SIZE
        min_declared = min_key in annotations
        max_declared = max_key in annotations
        if min_declared:
            min_size = _parse_size(min_key, annotations[min_key])
        if max_declared:
            max_size = _parse_size(max_key, annotations[max_key])
        return cls(min_size=min_size, max_size=max_size, min_declared=min_declared, max_declared=max_declared)


__all__ = [
    "DEFAULT_API_GROUP",
    "UNBOUNDED_MAX_SIZE",
    "ScalingBounds",
    "max_size_annotation_key",
    "min_size_annotation_key",
]
