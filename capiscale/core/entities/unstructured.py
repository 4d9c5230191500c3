"""
Schema-less view over a single API object.

The object is kept as the plain nested ``dict`` produced by the Kubernetes
client (``CustomObjectsApi`` and watch events already decode to dicts), so any
resource kind can be handled without compiled models.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from capiscale.core.errors import TypeMismatchError

PathSpec = Union[str, Tuple[str, ...]]


def normalize_path(*path: str) -> Tuple[str, ...]:
    """Accept either separate segments or a single dotted string."""
    if len(path) == 1 and "." in path[0]:
        path = tuple(path[0].split("."))
    if not path or any(not segment for segment in path):
        raise ValueError(f"Invalid field path: {'.'.join(path)!r}")
    return tuple(path)


class UnstructuredObject:
    """Read/write accessor over a nested attribute tree."""

    def __init__(self, obj: Mapping[str, Any]):
        if not isinstance(obj, Mapping):
            raise TypeError("UnstructuredObject requires a mapping")
        self._obj: Dict[str, Any] = dict(obj)

    # ------------------------------------------------------------------
    # Identity accessors

    @property
    def kind(self) -> str:
        return str(self._obj.get("kind") or "")

    @property
    def api_version(self) -> str:
        return str(self._obj.get("apiVersion") or "")

    @property
    def metadata(self) -> Dict[str, Any]:
        meta = self._obj.get("metadata")
        return meta if isinstance(meta, dict) else {}

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace") or "")

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")

    @property
    def uid(self) -> str:
        return str(self.metadata.get("uid") or "")

    @property
    def resource_version(self) -> str:
        return str(self.metadata.get("resourceVersion") or "")

    @property
    def deletion_timestamp(self) -> Optional[str]:
        return self.metadata.get("deletionTimestamp") or None

    @property
    def key(self) -> str:
        """Cache key in ``namespace/name`` form (bare name when cluster scoped)."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def labels(self) -> Dict[str, str]:
        value, found = self.nested_map("metadata", "labels")
        return value if found else {}

    @property
    def annotations(self) -> Dict[str, str]:
        value, found = self.nested_map("metadata", "annotations")
        return value if found else {}

    @property
    def owner_references(self) -> List[Dict[str, Any]]:
        """
        Raises:
            TypeMismatchError: ``ownerReferences`` is not a list of maps.
        """
        refs, found = self.nested_field("metadata", "ownerReferences")
        if not found or refs is None:
            return []
        if not isinstance(refs, list):
            raise self._mismatch(
                f"metadata.ownerReferences accessor error: {refs!r} is of type {type(refs).__name__}, expected list"
            )
        for ref in refs:
            if not isinstance(ref, Mapping):
                raise self._mismatch(
                    f"metadata.ownerReferences accessor error: {ref!r} is of type {type(ref).__name__}, expected map"
                )
        return [dict(ref) for ref in refs]

    def annotation(self, key: str) -> Tuple[Optional[str], bool]:
        annotations = self.annotations
        if key not in annotations:
            return None, False
        return annotations[key], True

    # ------------------------------------------------------------------
    # Path based getters

    def _mismatch(self, message: str) -> TypeMismatchError:
        return TypeMismatchError(
            message,
            kind=self.kind or None,
            namespace=self.namespace or None,
            name=self.name or None,
            operation="read-field",
        )

    def nested_field(self, *path: str) -> Tuple[Any, bool]:
        """
        Walk ``path`` and return ``(value, found)``.

        Raises:
            TypeMismatchError: if an intermediate node is not a mapping.
        """
        segments = normalize_path(*path)
        current: Any = self._obj
        for index, segment in enumerate(segments):
            if not isinstance(current, Mapping):
                walked = ".".join(segments[:index])
                raise self._mismatch(
                    f"{walked} accessor error: {current!r} is of type {type(current).__name__}, expected map"
                )
            if segment not in current:
                return None, False
            current = current[segment]
        return current, True

    def nested_int64(self, *path: str) -> Tuple[Optional[int], bool]:
        value, found = self.nested_field(*path)
        if not found or value is None:
            return None, False
        # bool is an int subclass; a JSON boolean is not a count
        if isinstance(value, bool) or not isinstance(value, int):
            raise self._mismatch(
                f"{'.'.join(normalize_path(*path))} accessor error: {value!r} is of type "
                f"{type(value).__name__}, expected int64"
            )
        return value, True

    def nested_string(self, *path: str) -> Tuple[Optional[str], bool]:
        value, found = self.nested_field(*path)
        if not found or value is None:
            return None, False
        if not isinstance(value, str):
            raise self._mismatch(
                f"{'.'.join(normalize_path(*path))} accessor error: {value!r} is of type "
                f"{type(value).__name__}, expected string"
            )
        return value, True

    def nested_map(self, *path: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        value, found = self.nested_field(*path)
        if not found or value is None:
            return None, False
        if not isinstance(value, Mapping):
            raise self._mismatch(
                f"{'.'.join(normalize_path(*path))} accessor error: {value!r} is of type "
                f"{type(value).__name__}, expected map"
            )
        return copy.deepcopy(dict(value)), True

    # ------------------------------------------------------------------
    # Copy-on-write setters

    def with_nested_field(self, value: Any, *path: str) -> "UnstructuredObject":
        """Return a patched deep copy; the receiver is left untouched."""
        segments = normalize_path(*path)
        patched = copy.deepcopy(self._obj)
        current = patched
        for index, segment in enumerate(segments[:-1]):
            child = current.get(segment)
            if child is None:
                child = {}
                current[segment] = child
            elif not isinstance(child, dict):
                walked = ".".join(segments[: index + 1])
                raise self._mismatch(
                    f"{walked} accessor error: {child!r} is of type {type(child).__name__}, expected map"
                )
            current = child
        current[segments[-1]] = copy.deepcopy(value)
        return UnstructuredObject(patched)

    def with_replicas(self, replicas: int, path: PathSpec = ("spec", "replicas")) -> "UnstructuredObject":
        if isinstance(path, str):
            path = (path,)
        return self.with_nested_field(int(replicas), *path)

    def deepcopy(self) -> "UnstructuredObject":
        return UnstructuredObject(copy.deepcopy(self._obj))

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._obj)

    def __repr__(self) -> str:
        return f"UnstructuredObject(kind={self.kind!r}, key={self.key!r}, resourceVersion={self.resource_version!r})"
