"""
Resource identity resolution.

Maps a declared ``(kind, apiVersion)`` to the group/version/resource needed to
address the object's scale subresource, using the API groups the cluster
serves. Identities are stable for the life of the process and are cached.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from capiscale.core.entities.types import (
    APIGroupResources,
    GroupResource,
    GroupVersionResource,
    parse_api_version,
)
from capiscale.core.errors import NotFoundError

logger = logging.getLogger(__name__)


class DiscoveryClient(Protocol):
    def server_groups(self) -> Sequence[APIGroupResources]:
        """Return every served group/version with its kind -> plural mapping."""


def _kind_map(resource_list) -> Dict[str, str]:
    kinds: Dict[str, str] = {}
    for resource in getattr(resource_list, "resources", None) or []:
        # skip subresources such as "machinesets/scale"
        if "/" in resource.name:
            continue
        kinds.setdefault(resource.kind, resource.name)
    return kinds


class KubernetesDiscoveryClient:
    """Discovery backed by the official ``kubernetes`` client."""

    def __init__(
        self,
        api_client: Optional[client.ApiClient] = None,
        *,
        groups: Optional[Iterable[str]] = None,
    ):
        self._apis = client.ApisApi(api_client)
        self._core = client.CoreApi(api_client)
        self._core_v1 = client.CoreV1Api(api_client)
        self._custom = client.CustomObjectsApi(api_client)
        # restricting the walk keeps discovery to one request per group version
        self._groups = set(groups) if groups is not None else None

    def _wanted(self, group: str) -> bool:
        return self._groups is None or group in self._groups

    def server_groups(self) -> List[APIGroupResources]:
        served: List[APIGroupResources] = []

        if self._wanted(""):
            core_versions = self._core.get_api_versions()
            for version in core_versions.versions or []:
                if version != "v1":
                    continue
                served.append(
                    APIGroupResources(
                        group="",
                        version=version,
                        resources=_kind_map(self._core_v1.get_api_resources()),
                        preferred=True,
                    )
                )

        group_list = self._apis.get_api_versions()
        for api_group in group_list.groups or []:
            if not self._wanted(api_group.name):
                continue
            preferred = api_group.preferred_version.version if api_group.preferred_version else None
            for group_version in api_group.versions or []:
                try:
                    resource_list = self._custom.get_api_resources(api_group.name, group_version.version)
                except ApiException as exc:
                    # aggregated APIs may be unavailable; the rest of discovery is still usable
                    logger.warning(
                        "Discovery failed for %s: %s", group_version.group_version, exc.reason
                    )
                    continue
                served.append(
                    APIGroupResources(
                        group=api_group.name,
                        version=group_version.version,
                        resources=_kind_map(resource_list),
                        preferred=group_version.version == preferred,
                    )
                )
        return served


class ResourceIdentityResolver:
    """Resolve and cache group/version/resource identities."""

    def __init__(self, discovery: DiscoveryClient):
        self._discovery = discovery
        self._cache: Dict[Tuple[str, str], GroupVersionResource] = {}
        self._lock = threading.Lock()

    def resolve(self, kind: str, api_version: str) -> GroupVersionResource:
        """
        Return the identity serving ``kind`` at ``api_version``.

        Raises:
            ValueError: malformed ``api_version``.
            NotFoundError: no served group/version lists ``kind``.
        """
        group, version = parse_api_version(api_version)
        key = (api_version, kind)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        # discovery happens outside the lock; concurrent misses compute the same value
        for served in self._discovery.server_groups():
            if served.group != group or served.version != version:
                continue
            plural = served.resources.get(kind)
            if plural:
                gvr = GroupVersionResource(group=group, version=version, resource=plural)
                with self._lock:
                    self._cache[key] = gvr
                logger.debug("Resolved %s %s -> %s", api_version, kind, gvr)
                return gvr

        raise NotFoundError(
            f"unable to find resource for kind {kind!r} in apiVersion {api_version!r}",
            kind=kind,
            operation="resolve-identity",
        )

    def preferred_version(self, group: str) -> str:
        """
        Return the preferred served version of ``group``.

        Raises:
            NotFoundError: the group is not served.
        """
        candidates = [served for served in self._discovery.server_groups() if served.group == group]
        if not candidates:
            raise NotFoundError(f"API group {group!r} is not served", operation="preferred-version")
        for served in candidates:
            if served.preferred:
                return served.version
        return candidates[0].version

    def version_for(self, group_resource: GroupResource) -> str:
        """Version to use when addressing ``group_resource`` on the wire."""
        with self._lock:
            for gvr in self._cache.values():
                if gvr.group_resource() == group_resource:
                    return gvr.version
        for served in self._discovery.server_groups():
            if served.group == group_resource.group and served.preferred:
                if group_resource.resource in served.resources.values():
                    return served.version
        for served in self._discovery.server_groups():
            if served.group == group_resource.group and group_resource.resource in served.resources.values():
                return served.version
        raise NotFoundError(
            f"no served version for {group_resource}",
            operation="resolve-version",
        )

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()


__all__ = [
    "DiscoveryClient",
    "KubernetesDiscoveryClient",
    "ResourceIdentityResolver",
]
