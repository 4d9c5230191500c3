"""
Authoritative access to the scale subresource.

Reads and writes here bypass the informer cache. Updates carry the resource
version returned by the preceding GET so a concurrent writer turns our update
into a :class:`~capiscale.core.errors.ConflictError` instead of clobbering it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Protocol

from kubernetes import client
from kubernetes.client.rest import ApiException

from capiscale.core.entities.types import GroupResource, Scale
from capiscale.core.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


class ScaleClient(Protocol):
    def get(self, group_resource: GroupResource, namespace: str, name: str) -> Scale:
        """Authoritative GET of the scale subresource."""

    def update(self, group_resource: GroupResource, scale: Scale) -> Scale:
        """Authoritative UPDATE guarded by ``scale.resource_version``."""


class RequestThrottle:
    """Token bucket limiting authoritative calls to a QPS budget with a burst allowance."""

    def __init__(
        self,
        qps: float,
        burst: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.qps = max(float(qps), 0.0)
        self.burst = max(int(burst), 1)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(now - self._updated, 0.0)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.qps)
        self._updated = now

    def acquire(self) -> float:
        """Block until a token is available; returns the time spent waiting."""
        if self.qps <= 0:
            return 0.0
        waited = 0.0
        while True:
            with self._lock:
                self._refill(self._clock())
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return waited
                delay = (1.0 - self._tokens) / self.qps
            self._sleep(delay)
            waited += delay


class KubernetesScaleClient:
    """Scale subresource access through ``CustomObjectsApi``."""

    def __init__(
        self,
        version_for: Callable[[GroupResource], str],
        api_client: Optional[client.ApiClient] = None,
        *,
        throttle: Optional[RequestThrottle] = None,
    ):
        self._custom = client.CustomObjectsApi(api_client)
        self._version_for = version_for
        self._throttle = throttle

    def _wait(self) -> None:
        if self._throttle is not None:
            waited = self._throttle.acquire()
            if waited > 0:
                logger.debug("Scale client throttled for %.3fs", waited)

    @staticmethod
    def _translate(exc: ApiException, group_resource: GroupResource, namespace: str, name: str, operation: str):
        if exc.status == 404:
            return NotFoundError(
                f"{group_resource} {namespace}/{name} not found",
                kind=str(group_resource),
                namespace=namespace,
                name=name,
                operation=operation,
            )
        if exc.status == 409:
            return ConflictError(
                "the object has been modified; please apply your changes to the latest version and try again",
                kind=str(group_resource),
                namespace=namespace,
                name=name,
                operation=operation,
            )
        return None

    def get(self, group_resource: GroupResource, namespace: str, name: str) -> Scale:
        version = self._version_for(group_resource)
        self._wait()
        try:
            payload = self._custom.get_namespaced_custom_object_scale(
                group=group_resource.group,
                version=version,
                namespace=namespace,
                plural=group_resource.resource,
                name=name,
            )
        except ApiException as exc:
            translated = self._translate(exc, group_resource, namespace, name, "get-scale")
            if translated is None:
                raise
            raise translated from exc
        return Scale.from_dict(payload)

    def update(self, group_resource: GroupResource, scale: Scale) -> Scale:
        version = self._version_for(group_resource)
        self._wait()
        try:
            payload = self._custom.replace_namespaced_custom_object_scale(
                group=group_resource.group,
                version=version,
                namespace=scale.namespace,
                plural=group_resource.resource,
                name=scale.name,
                body=scale.to_dict(),
            )
        except ApiException as exc:
            translated = self._translate(exc, group_resource, scale.namespace, scale.name, "update-scale")
            if translated is None:
                raise
            raise translated from exc
        return Scale.from_dict(payload)


__all__ = ["KubernetesScaleClient", "RequestThrottle", "ScaleClient"]
