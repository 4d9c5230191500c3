"""
Bundled configuration and policy definitions.
"""

from .policy import (  # noqa: F401
    DEFAULT_MISSING_REPLICAS_POLICY,
    MissingReplicasPolicy,
    resolve_missing_replicas_policy,
)

__all__ = [
    "DEFAULT_MISSING_REPLICAS_POLICY",
    "MissingReplicasPolicy",
    "resolve_missing_replicas_policy",
]
