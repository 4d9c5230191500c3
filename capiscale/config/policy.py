"""
Policy definitions for reading replica counts.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Dict, Tuple


class MissingReplicasPolicy(str, Enum):
    """
    What ``replicas()`` reports when the desired replica field is absent.

    The API server defaults ``spec.replicas`` on admission, but objects that
    were listed before defaulting (or fixtures built by hand) may omit it.
    Using ``str`` as a mixin keeps the enum usable as a plain YAML value.
    """

    ZERO = "zero"
    ERROR = "error"


DEFAULT_MISSING_REPLICAS_POLICY = MissingReplicasPolicy.ZERO


MISSING_REPLICAS_ALIASES: Dict[str, str] = {
    "0": MissingReplicasPolicy.ZERO.value,
    "default": MissingReplicasPolicy.ZERO.value,
    "lenient": MissingReplicasPolicy.ZERO.value,
    "raise": MissingReplicasPolicy.ERROR.value,
    "strict": MissingReplicasPolicy.ERROR.value,
    "fail": MissingReplicasPolicy.ERROR.value,
}


def resolve_missing_replicas_policy(
    value: str | MissingReplicasPolicy | None,
) -> Tuple[MissingReplicasPolicy | None, str | None]:
    """
    Resolve user input (enum, string, environment indirection) to a policy.

    Supports the following forms:
        - Enum members (:class:`MissingReplicasPolicy`)
        - String equivalents, case-insensitive (``"zero"``, ``"error"``)
        - Aliases (``"strict"``, ``"lenient"``, etc.)
        - Environment indirection: ``"env:CAPISCALE_MISSING_REPLICAS"``

    Returns:
        A tuple of ``(policy, hint)`` where ``hint`` describes the resolution source.
        If resolution fails, returns ``(None, error_hint)``.
    """
    if value is None:
        return None, None

    if isinstance(value, MissingReplicasPolicy):
        return value, f"enum:{value.name}"

    if not isinstance(value, str):
        return None, None

    raw = value.strip()
    if not raw:
        return None, None

    if raw.lower().startswith("env:"):
        env_key = raw[4:].strip()
        if not env_key:
            return None, "empty environment variable name"
        env_val = os.getenv(env_key)
        if env_val is None:
            return None, f"environment variable {env_key} is not set"
        raw = env_val.strip()
        if not raw:
            return None, f"environment variable {env_key} is empty"
        hint_prefix = f'env:{env_key}="{env_val}"'
    else:
        hint_prefix = None

    alias = MISSING_REPLICAS_ALIASES.get(raw.lower(), raw.lower())
    try:
        policy = MissingReplicasPolicy(alias)
    except ValueError:
        return None, hint_prefix or f'value="{raw}"'

    return policy, hint_prefix or f'value="{raw}"'
