"""Configuration helpers for capiscale.

This module loads optional YAML configuration files that describe which
resources the controller watches and how it talks to the API server.
Configuration precedence:

1. Environment variable ``CAPISCALE_CONFIG`` pointing to a YAML file.
2. ``capiscale.yaml`` in the current working directory.
3. Built-in defaults bundled with the package (``config/default.yaml``).

``CAPI_GROUP`` and ``CAPI_VERSION`` override the API group and version from
any of the above.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from capiscale.config.policy import (
    DEFAULT_MISSING_REPLICAS_POLICY,
    MissingReplicasPolicy,
    resolve_missing_replicas_policy,
)
from capiscale.core.entities.bounds import DEFAULT_API_GROUP
from capiscale.core.kinds import MACHINE_DEPLOYMENT_KIND, MACHINE_SET_KIND

__all__ = [
    "ControllerConfig",
    "get_controller_config",
    "load_controller_config",
    "reset_controller_config",
]


_ENV_VAR = "CAPISCALE_CONFIG"
_GROUP_ENV_VAR = "CAPI_GROUP"
_VERSION_ENV_VAR = "CAPI_VERSION"


@dataclass
class ControllerConfig:
    api_group: str = DEFAULT_API_GROUP
    api_version: str = ""
    namespace: Optional[str] = None
    kinds: List[str] = field(default_factory=lambda: [MACHINE_SET_KIND, MACHINE_DEPLOYMENT_KIND])
    resync_period_seconds: float = 300.0
    watch_timeout_seconds: int = 60
    sync_timeout_seconds: float = 30.0
    scale_qps: float = 20.0
    scale_burst: int = 40
    missing_replicas_policy: MissingReplicasPolicy = DEFAULT_MISSING_REPLICAS_POLICY

    def api_version_for(self, version: str) -> str:
        return f"{self.api_group}/{version}" if self.api_group else version


_controller_config: Optional[ControllerConfig] = None


def _resolve_config_path() -> Optional[Path]:
    env_path = os.environ.get(_ENV_VAR)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate.is_file():
            return candidate

    cwd_file = Path.cwd() / "capiscale.yaml"
    if cwd_file.is_file():
        return cwd_file
    return None


def _load_yaml_dict(path: Optional[Path] = None) -> Dict[str, object]:
    path = path or _resolve_config_path()
    if path is not None:
        with path.open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh) or {}

    # Fallback to bundled default configuration
    from importlib import resources

    text = resources.files("capiscale.config").joinpath("default.yaml").read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def _coerce_positive(node: Dict[str, object], key: str, default: float) -> float:
    raw = node.get(key, default)
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{key}' must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"'{key}' must be non-negative, got {value}")
    return value


def _build_controller_config(data: Dict[str, object]) -> ControllerConfig:
    node = data.get("controller", {}) or {}
    if not isinstance(node, dict):
        raise ValueError("'controller' section must be a mapping")

    defaults = ControllerConfig()

    raw_kinds = node.get("kinds", defaults.kinds)
    if not isinstance(raw_kinds, list) or not all(isinstance(item, str) and item.strip() for item in raw_kinds):
        raise ValueError("'kinds' must be a list of kind names")

    raw_policy = node.get("missing_replicas_policy", defaults.missing_replicas_policy.value)
    policy, hint = resolve_missing_replicas_policy(raw_policy)  # type: ignore[arg-type]
    if policy is None:
        raise ValueError(f"Invalid missing_replicas_policy ({hint or raw_policy!r}); expected 'zero' or 'error'")

    namespace = str(node.get("namespace") or "").strip() or None

    api_group = os.environ.get(_GROUP_ENV_VAR) or str(node.get("api_group") or defaults.api_group).strip()
    api_version = os.environ.get(_VERSION_ENV_VAR) or str(node.get("api_version") or "").strip()

    return ControllerConfig(
        api_group=api_group,
        api_version=api_version,
        namespace=namespace,
        kinds=[item.strip() for item in raw_kinds],
        resync_period_seconds=_coerce_positive(node, "resync_period_seconds", defaults.resync_period_seconds),
        watch_timeout_seconds=int(_coerce_positive(node, "watch_timeout_seconds", defaults.watch_timeout_seconds)),
        sync_timeout_seconds=_coerce_positive(node, "sync_timeout_seconds", defaults.sync_timeout_seconds),
        scale_qps=_coerce_positive(node, "scale_qps", defaults.scale_qps),
        scale_burst=int(_coerce_positive(node, "scale_burst", defaults.scale_burst)),
        missing_replicas_policy=policy,
    )


def load_controller_config(path: Optional[Path] = None) -> ControllerConfig:
    """Load configuration from ``path`` (or the usual search order) without caching."""
    return _build_controller_config(_load_yaml_dict(path))


def get_controller_config() -> ControllerConfig:
    global _controller_config
    if _controller_config is None:
        _controller_config = load_controller_config()
    return _controller_config


def reset_controller_config() -> None:
    """Reset cached controller configuration (intended for tests)."""
    global _controller_config
    _controller_config = None
