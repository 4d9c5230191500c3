"""
Uniform replica/bounds view over one cached scalable resource.

A :class:`ScalableResource` is cheap and ephemeral: it binds one snapshot
taken from the controller cache to the controller that produced it. Reads
(``replicas``, bounds, identity) never touch the network and always reflect
the snapshot the wrapper was built from; ``set_size`` is the only operation
that talks to the API server. Ask the controller for a fresh wrapper to see
the effect of a write once the watch has delivered it.

The wrapper holds a borrowed reference to its controller and must not be used
after that controller has been stopped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from capiscale.config.policy import MissingReplicasPolicy
from capiscale.core.entities.bounds import UNBOUNDED_MAX_SIZE, ScalingBounds
from capiscale.core.entities.types import GroupVersionResource, ResourceKind
from capiscale.core.entities.unstructured import UnstructuredObject
from capiscale.core.errors import FieldMissingError, InvalidBoundsError, StateError
from capiscale.core.kinds import KindSpec, lookup_kind

if TYPE_CHECKING:  # pragma: no cover
    from capiscale.core.controllers.controller import Controller

logger = logging.getLogger(__name__)


class ScalableResource:
    """Node-group backing resource (MachineSet or MachineDeployment)."""

    def __init__(self, controller: "Controller", obj: Union[UnstructuredObject, Mapping[str, Any]]):
        """
        Wrap ``obj`` for ``controller``.

        Raises:
            NotFoundError: the object's kind is not a registered scalable kind.
            InvalidBoundsError: the min/max size annotations are malformed.
            TypeMismatchError: ``metadata.annotations`` is not a map.
        """
        if not isinstance(obj, UnstructuredObject):
            obj = UnstructuredObject(obj)
        self._controller = controller
        self._object = obj.deepcopy()
        self._spec: KindSpec = lookup_kind(self._object.kind)
        try:
            self._bounds = ScalingBounds.from_annotations(self._object.annotations, controller.config.api_group)
        except InvalidBoundsError as exc:
            raise InvalidBoundsError(
                exc.message,
                kind=self.kind,
                namespace=self.namespace,
                name=self.name,
                operation="parse-bounds",
            ) from exc
        self._gvr: Optional[GroupVersionResource] = None

    # ------------------------------------------------------------------
    # Identity

    @property
    def kind(self) -> str:
        return self._object.kind

    @property
    def api_version(self) -> str:
        return self._object.api_version

    @property
    def namespace(self) -> str:
        return self._object.namespace

    @property
    def name(self) -> str:
        return self._object.name

    @property
    def id(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"

    @property
    def variant(self) -> ResourceKind:
        return self._spec.variant

    @property
    def unstructured(self) -> UnstructuredObject:
        """Independent copy of the wrapped snapshot."""
        return self._object.deepcopy()

    def labels(self) -> Dict[str, str]:
        return self._object.labels

    def annotations(self) -> Dict[str, str]:
        return self._object.annotations

    def is_deleting(self) -> bool:
        return self._object.deletion_timestamp is not None

    # ------------------------------------------------------------------
    # Bounds

    @property
    def bounds(self) -> ScalingBounds:
        return self._bounds

    def min_size(self) -> int:
        return self._bounds.min_size

    def max_size(self) -> int:
        """Declared maximum, or :data:`UNBOUNDED_MAX_SIZE` when absent."""
        return self._bounds.max_size

    def is_unbounded(self) -> bool:
        return self._bounds.max_size == UNBOUNDED_MAX_SIZE and not self._bounds.max_declared

    # ------------------------------------------------------------------
    # Replicas

    def group_version_resource(self) -> GroupVersionResource:
        if self._gvr is None:
            self._gvr = self._controller.resolver.resolve(self.kind, self.api_version)
        return self._gvr

    def replicas(self) -> int:
        """
        Desired replica count from the wrapped snapshot.

        Raises:
            StateError: a deployment-style resource is being deleted; treat it
                as having zero capacity.
            FieldMissingError: the field is absent and the configured policy
                is ``error``.
            TypeMismatchError: the field exists with a non-integer value.
        """
        if self.variant is ResourceKind.TEMPLATED_REPLICA_HOLDER and self.is_deleting():
            raise StateError(
                "resource is being deleted",
                kind=self.kind,
                namespace=self.namespace,
                name=self.name,
                operation="replicas",
            )

        value, found = self._object.nested_int64(*self._spec.replicas_path)
        if found:
            return int(value)

        if self._controller.config.missing_replicas_policy is MissingReplicasPolicy.ERROR:
            raise FieldMissingError(
                f"{'.'.join(self._spec.replicas_path)} is not set",
                kind=self.kind,
                namespace=self.namespace,
                name=self.name,
                operation="replicas",
            )
        return 0

    def status_replicas(self) -> int:
        """
        Observed replica count.

        Deployment-style resources report the sum over the MachineSets they
        own, falling back to their own status when no child is cached.
        """
        if self.variant is ResourceKind.TEMPLATED_REPLICA_HOLDER:
            children = self._controller.owned_machine_sets(self)
            if children:
                total = 0
                for child in children:
                    value, found = child.nested_int64(*lookup_kind(child.kind).status_replicas_path)
                    total += int(value) if found else 0
                return total
        value, found = self._object.nested_int64(*self._spec.status_replicas_path)
        return int(value) if found else 0

    def set_size(self, replicas: int) -> None:
        """
        Set the desired replica count through the scale subresource.

        Performs GET then UPDATE; the UPDATE carries the resource version from
        the GET, so a concurrent writer makes it fail with ``ConflictError``.
        The wrapped snapshot is not modified and the call does not wait for
        the cache to observe the change.

        Raises:
            ValueError: ``replicas`` is negative or exceeds the int32 range.
            NotFoundError: identity or object not found.
            ConflictError: the scale changed between GET and UPDATE.
        """
        if isinstance(replicas, bool) or not isinstance(replicas, int):
            raise ValueError(f"replicas must be an integer, got {replicas!r}")
        if replicas < 0:
            raise ValueError(f"replicas must be non-negative, got {replicas}")
        if replicas > UNBOUNDED_MAX_SIZE:
            raise ValueError(f"replicas {replicas} exceeds the int32 range")

        group_resource = self.group_version_resource().group_resource()
        client = self._controller.scale_client

        scale = client.get(group_resource, self.namespace, self.name)
        updated = client.update(group_resource, scale.with_replicas(replicas))
        logger.info(
            "Scaled %s from %d to %d (resourceVersion %s -> %s)",
            self.id,
            scale.spec_replicas,
            replicas,
            scale.resource_version,
            updated.resource_version,
        )

    # ------------------------------------------------------------------

    def refresh(self) -> "ScalableResource":
        """
        Re-wrap the controller's current cached copy.

        Raises:
            NotFoundError: the resource is gone from the cache.
        """
        obj = self._controller.get_resource(self.kind, self.namespace, self.name)
        return self._controller.new_scalable_resource(obj)

    def owner_names(self, kind: str) -> List[str]:
        return [ref.get("name", "") for ref in self._object.owner_references if ref.get("kind") == kind]

    def __repr__(self) -> str:
        return f"ScalableResource({self.id}, variant={self.variant.value})"
