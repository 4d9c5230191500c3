"""
Watch-fed local cache for one resource kind.

Each :class:`Informer` runs a single background thread that lists the
resource, then streams watch events into an in-memory cache keyed by
``namespace/name`` and fans them out to registered handlers. A single
consumer thread per kind keeps per-object event order intact.
"""

from __future__ import annotations

import copy
import functools
import logging
import queue
import socket
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Tuple

from kubernetes import watch
from kubernetes.client import CustomObjectsApi
from kubernetes.client.rest import ApiException

from capiscale.core.entities.types import GroupVersionResource

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
BOOKMARK = "BOOKMARK"
ERROR = "ERROR"

_HTTP_GONE = 410
_CONNECT_TIMEOUT_SECONDS = 10
_READ_GRACE_SECONDS = 5


class WatchExpiredError(Exception):
    """The watch resource version is too old; a fresh list is required."""


class ListWatch(Protocol):
    def list(self) -> Tuple[List[Dict[str, Any]], str]:
        """Return ``(items, resource_version)``."""

    def watch(self, resource_version: str, timeout_seconds: int) -> Iterator[Dict[str, Any]]:
        """Yield ``{"type": ..., "object": ...}`` events after ``resource_version``."""

    def stop(self) -> None:
        """Interrupt an in-flight :meth:`watch`."""


class KubernetesListWatch:
    """List/watch a custom resource through ``CustomObjectsApi``."""

    def __init__(
        self,
        custom_api: CustomObjectsApi,
        gvr: GroupVersionResource,
        kind: str,
        namespace: Optional[str] = None,
    ):
        self.custom_api = custom_api
        self.gvr = gvr
        self.kind = kind
        self.namespace = namespace
        self._watch: Optional[watch.Watch] = None
        self._response: Any = None

    def _list_call(self) -> Tuple[Callable[..., Any], Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "group": self.gvr.group,
            "version": self.gvr.version,
            "plural": self.gvr.resource,
        }
        if self.namespace:
            kwargs["namespace"] = self.namespace
            return self.custom_api.list_namespaced_custom_object, kwargs
        return self.custom_api.list_cluster_custom_object, kwargs

    def _stamp(self, item: Dict[str, Any]) -> Dict[str, Any]:
        item.setdefault("apiVersion", self.gvr.api_version)
        item.setdefault("kind", self.kind)
        return item

    def list(self) -> Tuple[List[Dict[str, Any]], str]:
        func, kwargs = self._list_call()
        resp = func(**kwargs)
        # list response is a dict for CustomObjectsApi
        items = resp.get("items", []) if isinstance(resp, dict) else []
        metadata = resp.get("metadata", {}) if isinstance(resp, dict) else {}
        return [self._stamp(item) for item in items], str(metadata.get("resourceVersion") or "")

    def watch(self, resource_version: str, timeout_seconds: int) -> Iterator[Dict[str, Any]]:
        func, kwargs = self._list_call()

        @functools.wraps(func)
        def _open(*args: Any, **call_kwargs: Any) -> Any:
            response = func(*args, **call_kwargs)
            self._response = response
            return response

        self._watch = watch.Watch()
        try:
            for event in self._watch.stream(
                _open,
                resource_version=resource_version or None,
                timeout_seconds=timeout_seconds,
                allow_watch_bookmarks=True,
                # (connect, read): a dead connection cannot outlive the server-side timeout
                _request_timeout=(_CONNECT_TIMEOUT_SECONDS, timeout_seconds + _READ_GRACE_SECONDS),
                **kwargs,
            ):
                obj = event.get("object")
                if event.get("type") == ERROR:
                    code = obj.get("code") if isinstance(obj, dict) else None
                    if code == _HTTP_GONE:
                        raise WatchExpiredError(str(obj.get("message", "resource version expired")))
                    raise ApiException(status=code or 500, reason=str(obj))
                if isinstance(obj, dict):
                    self._stamp(obj)
                yield {"type": event.get("type"), "object": obj}
        except ApiException as exc:
            if exc.status == _HTTP_GONE:
                raise WatchExpiredError(str(exc.reason)) from exc
            raise
        finally:
            self._watch.stop()
            self._response = None

    def stop(self) -> None:
        """Interrupt the stream, including a read blocked on an idle connection."""
        if self._watch is not None:
            self._watch.stop()
        response = self._response
        if response is None:
            return
        conn = getattr(response, "connection", None)
        sock = getattr(conn, "sock", None) if conn is not None else None
        if sock is None:
            return
        try:
            # shutdown unblocks a pending recv; close() does not
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug("Watch %s socket already closed: %s", self.gvr, exc)


def object_key(obj: Dict[str, Any]) -> Optional[str]:
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None
    namespace = metadata.get("namespace")
    return f"{namespace}/{name}" if namespace else name


@dataclass
class ResourceEventHandler:
    """Callbacks invoked from the informer thread with independent snapshots."""

    on_add: Optional[Callable[[Dict[str, Any]], None]] = None
    on_update: Optional[Callable[[Dict[str, Any], Dict[str, Any]], None]] = None
    on_delete: Optional[Callable[[Dict[str, Any]], None]] = None


class Informer:
    """Maintain an in-memory cache of one resource kind via list + watch."""

    def __init__(
        self,
        list_watch: ListWatch,
        *,
        name: str,
        resync_period_seconds: float = 300.0,
        watch_timeout_seconds: int = 60,
    ):
        self.list_watch = list_watch
        self.name = name
        self.resync_period_seconds = resync_period_seconds
        self.watch_timeout_seconds = watch_timeout_seconds

        self._cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        # held while mutating the cache and delivering the matching events, so a
        # handler never sees an object older than one it was already given
        self._dispatch_lock = threading.RLock()
        self._handlers: List[ResourceEventHandler] = []
        self._resource_version: str = ""
        self._synced = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_list = 0.0

    @property
    def has_synced(self) -> bool:
        """Return True once an initial list has completed."""
        return self._synced.is_set()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        return self._synced.wait(timeout)

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        """Start the background watch thread if not already running."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"informer-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Informer[%s] started", self.name)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the background thread and release the watch connection."""
        self._stop_event.set()
        self.list_watch.stop()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Informer[%s] did not stop within %ss", self.name, timeout)
                return
            self._thread = None
        logger.debug("Informer[%s] stopped", self.name)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Cache access

    def get(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """Return an independent copy of the cached object, if present."""
        key = f"{namespace}/{name}" if namespace else name
        return self.get_by_key(key)

    def get_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            obj = self._cache.get(key)
            return copy.deepcopy(obj) if obj is not None else None

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(obj) for obj in self._cache.values()]

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """
        Register ``handler``; objects already cached are replayed as adds.

        The replay runs on the calling thread; watch events arriving meanwhile
        are delivered to ``handler`` after it, never before.
        """
        with self._dispatch_lock:
            with self._lock:
                self._handlers.append(handler)
                existing = [copy.deepcopy(obj) for obj in self._cache.values()]
            for obj in existing:
                self._invoke(handler, ADDED, obj, None)

    def remove_event_handler(self, handler: ResourceEventHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    # ------------------------------------------------------------------
    # Background loop

    def _run(self) -> None:
        backoff = 1.0
        while not self._stop_event.is_set():
            try:
                resync_due = (
                    self.resync_period_seconds > 0
                    and time.monotonic() - self._last_list >= self.resync_period_seconds
                )
                if not self._synced.is_set() or not self._resource_version or resync_due:
                    self._full_resync()
                    backoff = 1.0
                self._run_watch_loop()
                backoff = 1.0
            except WatchExpiredError:
                # Resource version too old; force a fresh list on next loop.
                logger.info("Informer[%s] watch expired, relisting", self.name)
                self._resource_version = ""
            except Exception as exc:
                if self._stop_event.is_set():
                    break
                logger.warning("Informer[%s] watch error: %s", self.name, exc, exc_info=True)
                self._resource_version = ""
                self._stop_event.wait(min(backoff, 30.0))
                backoff = min(backoff * 2, 30.0)

    def _full_resync(self) -> None:
        """Perform a full list, replace the cache and dispatch the differences."""
        items, resource_version = self.list_watch.list()

        new_cache: Dict[str, Dict[str, Any]] = {}
        for item in items:
            key = object_key(item)
            if key:
                new_cache[key] = item

        with self._dispatch_lock:
            with self._lock:
                old_cache = self._cache
                self._cache = new_cache
                self._resource_version = resource_version

            for key, obj in new_cache.items():
                old = old_cache.get(key)
                if old is None:
                    self._dispatch(ADDED, obj, None)
                elif _resource_version(old) != _resource_version(obj):
                    self._dispatch(MODIFIED, obj, old)
            for key, old in old_cache.items():
                if key not in new_cache:
                    self._dispatch(DELETED, old, None)

        self._last_list = time.monotonic()
        if not self._synced.is_set():
            logger.info("Informer[%s] synced %d objects at resourceVersion=%s", self.name, len(new_cache), resource_version)
        self._synced.set()

    def _run_watch_loop(self) -> None:
        """Stream watch events to keep the cache fresh."""
        for event in self.list_watch.watch(self._resource_version, self.watch_timeout_seconds):
            if self._stop_event.is_set():
                break
            self._handle_event(event)
            if self.resync_period_seconds > 0 and time.monotonic() - self._last_list >= self.resync_period_seconds:
                break

    def _handle_event(self, event: Dict[str, Any]) -> None:
        obj = event.get("object")
        if obj is None:
            return
        if not isinstance(obj, dict):
            try:
                obj = obj.to_dict()
            except AttributeError:
                logger.debug("Informer[%s] ignoring undecodable event object %r", self.name, obj)
                return

        event_type = event.get("type")
        if event_type == BOOKMARK:
            rv = _resource_version(obj)
            if rv:
                self._resource_version = rv
            return

        key = object_key(obj)
        if not key:
            return

        with self._dispatch_lock:
            with self._lock:
                old = self._cache.get(key)
                if event_type == DELETED:
                    self._cache.pop(key, None)
                else:
                    self._cache[key] = obj
                rv = _resource_version(obj)
                if rv:
                    self._resource_version = rv

            if event_type == DELETED:
                self._dispatch(DELETED, obj, None)
            elif old is None:
                self._dispatch(ADDED, obj, None)
            else:
                self._dispatch(MODIFIED, obj, old)

    def _dispatch(self, event_type: str, obj: Dict[str, Any], old: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            self._invoke(handler, event_type, copy.deepcopy(obj), copy.deepcopy(old) if old is not None else None)

    def _invoke(
        self,
        handler: ResourceEventHandler,
        event_type: str,
        obj: Dict[str, Any],
        old: Optional[Dict[str, Any]],
    ) -> None:
        try:
            if event_type == ADDED and handler.on_add is not None:
                handler.on_add(obj)
            elif event_type == MODIFIED and handler.on_update is not None:
                handler.on_update(old or {}, obj)
            elif event_type == DELETED and handler.on_delete is not None:
                handler.on_delete(obj)
        except Exception:
            logger.exception("Informer[%s] event handler failed for %s %s", self.name, event_type, object_key(obj))


def _resource_version(obj: Dict[str, Any]) -> str:
    return str((obj.get("metadata") or {}).get("resourceVersion") or "")


class EventWaiter:
    """
    Subscribe to an informer, then poll with a timeout for an object matching
    ``predicate``.

    Usage::

        waiter = EventWaiter(lambda obj: obj["spec"]["replicas"] == 5)
        informer.add_event_handler(waiter.handler)
        ...  # trigger the change
        obj = waiter.wait(timeout=1.0)
    """

    def __init__(self, predicate: Callable[[Dict[str, Any]], bool]):
        self.predicate = predicate
        self._events: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.handler = ResourceEventHandler(
            on_add=self._events.put,
            on_update=lambda _old, new: self._events.put(new),
        )
        self.last_error: Optional[BaseException] = None

    def wait(self, timeout: float) -> Dict[str, Any]:
        """
        Return the first delivered object satisfying the predicate.

        Raises:
            TimeoutError: nothing matched before ``timeout`` seconds elapsed.
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                obj = self._events.get(timeout=remaining)
            except queue.Empty:
                break
            try:
                if self.predicate(obj):
                    return obj
            except Exception as exc:  # predicate may read a half-converged object
                self.last_error = exc
        raise TimeoutError(
            f"timeout while waiting for update. Last error was: {self.last_error or 'no matching updates received yet'}"
        )


__all__ = [
    "ADDED",
    "DELETED",
    "MODIFIED",
    "EventWaiter",
    "Informer",
    "KubernetesListWatch",
    "ListWatch",
    "ResourceEventHandler",
    "WatchExpiredError",
    "object_key",
]
