"""
Error taxonomy shared by the node-group layer.

Every failure carries the resource context (kind, namespace, name) and the
operation that raised it so the autoscaling loop can decide what to do:

* :class:`NotFoundError` - drop the node group from consideration.
* :class:`ConflictError` - re-read and retry the scale operation.
* :class:`StateError` - treat the node group as having zero capacity.
* :class:`TypeMismatchError` / :class:`FieldMissingError` - schema assumption
  violated, surface to the operator.
"""

from __future__ import annotations

from typing import Optional


class NodeGroupError(Exception):
    """Base class for all node-group layer failures."""

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        self.message = message
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.operation = operation
        super().__init__(self._render())

    def _render(self) -> str:
        context = []
        if self.operation:
            context.append(f"op={self.operation}")
        if self.kind:
            context.append(f"kind={self.kind}")
        if self.namespace or self.name:
            context.append(f"object={self.namespace or ''}/{self.name or ''}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class NotFoundError(NodeGroupError):
    """No discovery match, no cache entry, or the resource is gone."""


class TypeMismatchError(NodeGroupError):
    """An attribute exists but has an unexpected type."""


class FieldMissingError(NodeGroupError):
    """A required attribute is absent and no default applies."""


class ConflictError(NodeGroupError):
    """Optimistic-concurrency failure on an authoritative update."""


class StateError(NodeGroupError):
    """The resource is in a terminal or deleting condition."""


class InvalidBoundsError(NodeGroupError, ValueError):
    """Scaling bound annotations are malformed."""


class CacheSyncError(NodeGroupError):
    """Informer caches did not complete their initial list in time."""


__all__ = [
    "NodeGroupError",
    "NotFoundError",
    "TypeMismatchError",
    "FieldMissingError",
    "ConflictError",
    "StateError",
    "InvalidBoundsError",
    "CacheSyncError",
]
