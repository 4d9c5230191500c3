"""
Controller owning the informer caches and the authoritative scale client.

Reads go to the informer caches (one per watched kind); writes go out through
the scale client. Informers run on their own threads and are kept current by
watch events, so wrappers created after a write eventually observe it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from capiscale.core.config import ControllerConfig, get_controller_config
from capiscale.core.controllers.node_group import NodeGroup
from capiscale.core.controllers.scalable_resource import ScalableResource
from capiscale.core.discovery import KubernetesDiscoveryClient, ResourceIdentityResolver
from capiscale.core.entities.types import GroupVersionResource
from capiscale.core.entities.unstructured import UnstructuredObject
from capiscale.core.errors import CacheSyncError, NotFoundError
from capiscale.core.informer import Informer, KubernetesListWatch, ListWatch, ResourceEventHandler
from capiscale.core.kinds import MACHINE_DEPLOYMENT_KIND, MACHINE_SET_KIND, lookup_kind
from capiscale.core.scale import KubernetesScaleClient, RequestThrottle, ScaleClient

logger = logging.getLogger(__name__)

ListWatchFactory = Callable[[GroupVersionResource, str, Optional[str]], ListWatch]


class Controller:
    """Cache-backed factory for :class:`ScalableResource` instances."""

    def __init__(
        self,
        resolver: ResourceIdentityResolver,
        scale_client: ScaleClient,
        list_watch_factory: ListWatchFactory,
        *,
        config: Optional[ControllerConfig] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            resolver: Identity resolver shared with the scale client.
            scale_client: Authoritative scale subresource client.
            list_watch_factory: Builds the list/watch source for one kind.
            config: Controller settings; defaults to :func:`get_controller_config`.
            stop_event: Optional external cancellation signal; setting it
                stops every watch loop.
        """
        self.config = config or get_controller_config()
        self.resolver = resolver
        self.scale_client = scale_client
        self._list_watch_factory = list_watch_factory
        self._external_stop = stop_event

        self._informers: Dict[str, Informer] = {}
        self._lock = threading.RLock()
        self._shutdown = threading.Event()
        self._cancel_thread: Optional[threading.Thread] = None
        self._started = False
        self.api_version: Optional[str] = None

    @classmethod
    def from_kube_config(
        cls,
        *,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        in_cluster: Optional[bool] = None,
        config: Optional[ControllerConfig] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> "Controller":
        """
        Wire the controller to a real cluster with the official client.

        ``in_cluster=None`` tries the service-account config first and falls
        back to kubeconfig.
        """
        from kubernetes import client as k8s_client
        from kubernetes import config as k8s_config
        from kubernetes.config.config_exception import ConfigException

        cfg = config or get_controller_config()
        if in_cluster is None:
            try:
                k8s_config.load_incluster_config()
            except ConfigException:
                k8s_config.load_kube_config(config_file=kubeconfig, context=context)
        elif in_cluster:
            k8s_config.load_incluster_config()
        else:
            k8s_config.load_kube_config(config_file=kubeconfig, context=context)

        api_client = k8s_client.ApiClient()
        resolver = ResourceIdentityResolver(KubernetesDiscoveryClient(api_client, groups={cfg.api_group}))
        scale_client = KubernetesScaleClient(
            resolver.version_for,
            api_client,
            throttle=RequestThrottle(cfg.scale_qps, cfg.scale_burst),
        )
        custom_api = k8s_client.CustomObjectsApi(api_client)

        def _list_watch(gvr: GroupVersionResource, kind: str, namespace: Optional[str]) -> ListWatch:
            return KubernetesListWatch(custom_api, gvr, kind, namespace)

        return cls(resolver, scale_client, _list_watch, config=cfg, stop_event=stop_event)

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self, timeout: Optional[float] = None) -> None:
        """
        Resolve every enabled kind, start its informer and wait for the caches.

        Raises:
            NotFoundError: a kind is unsupported or not served by the cluster.
            CacheSyncError: the caches did not sync within ``timeout``.
        """
        with self._lock:
            if self._started:
                return
            version = self.config.api_version or self.resolver.preferred_version(self.config.api_group)
            self.api_version = self.config.api_version_for(version)

            informers: Dict[str, Informer] = {}
            for kind in self.config.kinds:
                lookup_kind(kind)
                gvr = self.resolver.resolve(kind, self.api_version)
                informers[kind] = Informer(
                    self._list_watch_factory(gvr, kind, self.config.namespace),
                    name=kind,
                    resync_period_seconds=self.config.resync_period_seconds,
                    watch_timeout_seconds=self.config.watch_timeout_seconds,
                )
                logger.info("Watching %s as %s", kind, gvr)

            self._informers = informers
            self._shutdown.clear()
            for informer in informers.values():
                informer.start()
            self._started = True

            if self._external_stop is not None:
                self._cancel_thread = threading.Thread(
                    target=self._wait_for_cancel,
                    name="controller-cancel",
                    daemon=True,
                )
                self._cancel_thread.start()

        timeout = self.config.sync_timeout_seconds if timeout is None else timeout
        deadline = time.monotonic() + timeout
        for kind, informer in self._informers.items():
            if not informer.wait_for_sync(max(deadline - time.monotonic(), 0.0)):
                self.stop()
                raise CacheSyncError(
                    f"informer cache did not sync within {timeout}s",
                    kind=kind,
                    operation="start",
                )
        logger.info("Controller caches synced for %s", ", ".join(self._informers))

    def stop(self) -> None:
        """Stop every informer and release watch connections. Idempotent."""
        with self._lock:
            if not self._started:
                return
            self._started = False
            self._shutdown.set()
            informers = list(self._informers.values())
            cancel_thread, self._cancel_thread = self._cancel_thread, None
        for informer in informers:
            informer.stop()
        # the cancel watcher itself calls stop(); it cannot join itself
        if cancel_thread is not None and cancel_thread is not threading.current_thread():
            cancel_thread.join()
        logger.info("Controller stopped")

    def _wait_for_cancel(self) -> None:
        while not self._shutdown.is_set():
            if self._external_stop.wait(0.1):
                logger.info("Controller received external stop signal")
                self.stop()
                return

    @property
    def running(self) -> bool:
        return self._started

    def __enter__(self) -> "Controller":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Cache access

    def informer(self, kind: str) -> Informer:
        informer = self._informers.get(kind)
        if informer is None:
            raise NotFoundError("kind is not watched by this controller", kind=kind, operation="informer")
        return informer

    def add_event_handler(self, kind: str, handler: ResourceEventHandler) -> None:
        self.informer(kind).add_event_handler(handler)

    def remove_event_handler(self, kind: str, handler: ResourceEventHandler) -> None:
        self.informer(kind).remove_event_handler(handler)

    def get_resource(self, kind: str, namespace: str, name: str) -> UnstructuredObject:
        """
        Cache-only lookup; never falls back to a live read.

        Raises:
            NotFoundError: not in the cache (or the kind is not watched).
        """
        obj = self.informer(kind).get(namespace, name)
        if obj is None:
            raise NotFoundError(
                "resource not found in cache",
                kind=kind,
                namespace=namespace,
                name=name,
                operation="get-resource",
            )
        return UnstructuredObject(obj)

    def list_resources(self, kind: str) -> List[UnstructuredObject]:
        return [UnstructuredObject(obj) for obj in self.informer(kind).list()]

    def new_scalable_resource(self, obj: Union[UnstructuredObject, Mapping[str, Any]]) -> ScalableResource:
        return ScalableResource(self, obj)

    def scalable_resource(self, kind: str, namespace: str, name: str) -> ScalableResource:
        return self.new_scalable_resource(self.get_resource(kind, namespace, name))

    def owned_machine_sets(self, resource: ScalableResource) -> List[UnstructuredObject]:
        """MachineSets in the cache owned by the given MachineDeployment."""
        if MACHINE_SET_KIND not in self._informers:
            return []
        uid = resource.unstructured.uid
        owned: List[UnstructuredObject] = []
        for machine_set in self.list_resources(MACHINE_SET_KIND):
            if machine_set.namespace != resource.namespace:
                continue
            for ref in machine_set.owner_references:
                if ref.get("kind") != resource.kind or ref.get("name") != resource.name:
                    continue
                if uid and ref.get("uid") and ref.get("uid") != uid:
                    continue
                owned.append(machine_set)
                break
        return sorted(owned, key=lambda obj: obj.name)

    def node_groups(self) -> List[NodeGroup]:
        """
        Every cached resource that opted into autoscaling.

        A resource opts in by carrying both size annotations with a non-zero
        maximum. MachineSets owned by a MachineDeployment are skipped; the
        deployment is the node group.

        Raises:
            InvalidBoundsError: an opted-in resource has malformed bounds.
            TypeMismatchError: a cached resource has malformed metadata.
        """
        groups: List[NodeGroup] = []
        for kind in self._informers:
            for obj in self.list_resources(kind):
                if kind == MACHINE_SET_KIND and any(
                    ref.get("kind") == MACHINE_DEPLOYMENT_KIND for ref in obj.owner_references
                ):
                    continue
                resource = self.new_scalable_resource(obj)
                if not resource.bounds.has_declared_bounds or resource.max_size() == 0:
                    continue
                groups.append(NodeGroup(resource))
        return sorted(groups, key=lambda group: group.id)


__all__ = ["Controller", "ListWatchFactory"]
