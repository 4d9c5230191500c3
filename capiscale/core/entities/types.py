"""
Common type definitions shared by the resolver, clients and controllers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class ResourceKind(str, Enum):
    """Variant of a scalable resource, fixed at wrap time."""

    # replica count directly under spec.replicas (MachineSet)
    REPLICA_HOLDER = "replica_holder"
    # template-bearing resource that owns replica-set-like children (MachineDeployment)
    TEMPLATED_REPLICA_HOLDER = "templated_replica_holder"


@dataclass(frozen=True)
class GroupResource:
    group: str
    resource: str

    def __str__(self) -> str:
        if not self.group:
            return self.resource
        return f"{self.resource}.{self.group}"


@dataclass(frozen=True)
class GroupVersionResource:
    group: str
    version: str
    resource: str

    def group_resource(self) -> GroupResource:
        return GroupResource(group=self.group, resource=self.resource)

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Resource={self.resource}"


def parse_api_version(api_version: str) -> Tuple[str, str]:
    """
    Split ``group/version`` (or a bare core-group ``version``).

    Raises:
        ValueError: empty string, empty segment, or more than one ``/``.
    """
    if not isinstance(api_version, str) or not api_version.strip():
        raise ValueError("apiVersion must be a non-empty string")
    parts = api_version.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    raise ValueError(f"unexpected GroupVersion string: {api_version!r}")


@dataclass(frozen=True)
class APIGroupResources:
    """One served group/version and the kinds it exposes."""

    group: str
    version: str
    resources: Mapping[str, str] = field(default_factory=dict)  # kind -> plural
    preferred: bool = False


@dataclass(frozen=True)
class Scale:
    """Snapshot of a scale subresource as returned by an authoritative GET."""

    namespace: str
    name: str
    spec_replicas: int
    status_replicas: int = 0
    resource_version: str = ""
    selector: Optional[str] = None

    def with_replicas(self, replicas: int) -> "Scale":
        return replace(self, spec_replicas=int(replicas))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Scale":
        metadata = payload.get("metadata") or {}
        spec = payload.get("spec") or {}
        status = payload.get("status") or {}
        return cls(
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata.get("name") or ""),
            spec_replicas=int(spec.get("replicas") or 0),
            status_replicas=int(status.get("replicas") or 0),
            resource_version=str(metadata.get("resourceVersion") or ""),
            selector=status.get("selector"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "autoscaling/v1",
            "kind": "Scale",
            "metadata": {
                "namespace": self.namespace,
                "name": self.name,
                "resourceVersion": self.resource_version,
            },
            "spec": {"replicas": self.spec_replicas},
        }


__all__ = [
    "APIGroupResources",
    "GroupResource",
    "GroupVersionResource",
    "ResourceKind",
    "Scale",
    "parse_api_version",
]
