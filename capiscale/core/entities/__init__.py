"""
Domain entities used throughout the capiscale runtime.
"""

from .bounds import (  # noqa: F401
    DEFAULT_API_GROUP,
    UNBOUNDED_MAX_SIZE,
    ScalingBounds,
    max_size_annotation_key,
    min_size_annotation_key,
)
from .types import (  # noqa: F401
    APIGroupResources,
    GroupResource,
    GroupVersionResource,
    ResourceKind,
    Scale,
    parse_api_version,
)
from .unstructured import UnstructuredObject  # noqa: F401

__all__ = [
    "DEFAULT_API_GROUP",
    "UNBOUNDED_MAX_SIZE",
    "ScalingBounds",
    "max_size_annotation_key",
    "min_size_annotation_key",
    "APIGroupResources",
    "GroupResource",
    "GroupVersionResource",
    "ResourceKind",
    "Scale",
    "parse_api_version",
    "UnstructuredObject",
]
