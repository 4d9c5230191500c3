import pytest

from capiscale.core.entities.types import ResourceKind
from capiscale.core.errors import NotFoundError
from capiscale.core.kinds import (
    KindSpec,
    lookup_kind,
    register_kind,
    supported_kinds,
    unregister_kind,
)


def test_builtin_kinds():
    assert {"MachineSet", "MachineDeployment"} <= set(supported_kinds())
    assert lookup_kind("MachineSet").variant is ResourceKind.REPLICA_HOLDER
    assert lookup_kind("MachineDeployment").variant is ResourceKind.TEMPLATED_REPLICA_HOLDER
    assert lookup_kind("MachineDeployment").replicas_path == ("spec", "replicas")


def test_lookup_is_case_sensitive():
    with pytest.raises(NotFoundError):
        lookup_kind("machineset")


def test_register_custom_kind():
    spec = KindSpec(kind="MachinePool", variant=ResourceKind.REPLICA_HOLDER)
    register_kind(spec)
    try:
        assert lookup_kind("MachinePool") is spec
        with pytest.raises(ValueError):
            register_kind(spec)
        register_kind(spec, replace=True)
    finally:
        unregister_kind("MachinePool")
    assert "MachinePool" not in supported_kinds()


def test_register_rejects_empty_name():
    with pytest.raises(ValueError):
        register_kind(KindSpec(kind=" ", variant=ResourceKind.REPLICA_HOLDER))
