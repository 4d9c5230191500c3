"""
Registry of resource kinds that can back a node group.

Adding support for a new kind means registering one :class:`KindSpec`; if its
desired replica count lives somewhere other than ``spec.replicas`` the
:class:`KindSpec` carries that path as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from capiscale.core.entities.types import ResourceKind
from capiscale.core.errors import NotFoundError

MACHINE_SET_KIND = "MachineSet"
MACHINE_DEPLOYMENT_KIND = "MachineDeployment"


@dataclass(frozen=True)
class KindSpec:
    kind: str
    variant: ResourceKind
    replicas_path: Tuple[str, ...] = ("spec", "replicas")
    status_replicas_path: Tuple[str, ...] = ("status", "replicas")


_KIND_REGISTRY: dict[str, KindSpec] = {}


def register_kind(spec: KindSpec, *, replace: bool = False) -> None:
    """
    将资源类型注册到全局表中。

    Args:
        spec: 类型描述，``kind`` 按原样（大小写敏感）作为键。
        replace: 当名称已存在时是否允许覆盖，默认不允许。
    """
    key = spec.kind.strip()
    if not key:
        raise ValueError("Kind name must be a non-empty string.")
    if key in _KIND_REGISTRY and not replace:
        raise ValueError(f"Kind '{key}' already registered.")
    _KIND_REGISTRY[key] = spec


def unregister_kind(kind: str) -> None:
    """从全局表删除指定类型，名称不存在时静默返回。"""
    _KIND_REGISTRY.pop(kind.strip(), None)


def supported_kinds() -> tuple[str, ...]:
    return tuple(sorted(_KIND_REGISTRY))


def lookup_kind(kind: str) -> KindSpec:
    try:
        return _KIND_REGISTRY[kind]
    except KeyError as exc:
        raise NotFoundError(
            f"unsupported scalable resource kind {kind!r}; "
            f"supported kinds: {', '.join(supported_kinds()) or '<none>'}",
            kind=kind or None,
            operation="lookup-kind",
        ) from exc


register_kind(KindSpec(kind=MACHINE_SET_KIND, variant=ResourceKind.REPLICA_HOLDER))
register_kind(KindSpec(kind=MACHINE_DEPLOYMENT_KIND, variant=ResourceKind.TEMPLATED_REPLICA_HOLDER))


__all__ = [
    "KindSpec",
    "MACHINE_DEPLOYMENT_KIND",
    "MACHINE_SET_KIND",
    "lookup_kind",
    "register_kind",
    "supported_kinds",
    "unregister_kind",
]
