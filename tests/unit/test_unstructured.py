import pytest

from capiscale.core.entities.unstructured import UnstructuredObject, normalize_path
from capiscale.core.errors import TypeMismatchError


def _obj(**spec):
    return UnstructuredObject(
        {
            "apiVersion": "cluster.x-k8s.io/v1beta1",
            "kind": "MachineSet",
            "metadata": {
                "name": "workers",
                "namespace": "default",
                "resourceVersion": "7",
                "annotations": {"a": "1"},
                "labels": {"pool": "gpu"},
            },
            "spec": spec,
        }
    )


def test_identity_accessors():
    obj = _obj(replicas=3)
    assert obj.kind == "MachineSet"
    assert obj.api_version == "cluster.x-k8s.io/v1beta1"
    assert obj.key == "default/workers"
    assert obj.resource_version == "7"
    assert obj.labels == {"pool": "gpu"}
    assert obj.annotation("a") == ("1", True)
    assert obj.annotation("b") == (None, False)
    assert obj.deletion_timestamp is None


def test_nested_int64_present_and_absent():
    obj = _obj(replicas=3)
    assert obj.nested_int64("spec", "replicas") == (3, True)
    assert obj.nested_int64("spec.replicas") == (3, True)
    assert obj.nested_int64("spec", "missing") == (None, False)
    assert obj.nested_int64("status", "replicas") == (None, False)


def test_nested_int64_rejects_wrong_leaf_type():
    """字段存在但类型错误时必须报错，不能当作缺失。"""
    with pytest.raises(TypeMismatchError):
        _obj(replicas="3").nested_int64("spec", "replicas")
    with pytest.raises(TypeMismatchError):
        _obj(replicas=True).nested_int64("spec", "replicas")


def test_nested_field_rejects_non_map_intermediate():
    obj = _obj(template="not-a-map")
    with pytest.raises(TypeMismatchError) as excinfo:
        obj.nested_field("spec", "template", "spec")
    assert "spec.template" in str(excinfo.value)
    assert excinfo.value.name == "workers"


def test_nested_string_and_map():
    obj = _obj(clusterName="c1", template={"spec": {"x": 1}})
    assert obj.nested_string("spec", "clusterName") == ("c1", True)
    value, found = obj.nested_map("spec", "template")
    assert found and value == {"spec": {"x": 1}}
    value["spec"]["x"] = 2
    assert obj.nested_field("spec", "template", "spec", "x") == (1, True)
    with pytest.raises(TypeMismatchError):
        obj.nested_map("spec", "clusterName")


def test_with_replicas_returns_copy():
    obj = _obj(replicas=1)
    patched = obj.with_replicas(5)
    assert patched.nested_int64("spec", "replicas") == (5, True)
    assert obj.nested_int64("spec", "replicas") == (1, True)

    created = _obj().with_nested_field(2, "status", "replicas")
    assert created.nested_int64("status.replicas") == (2, True)


def test_normalize_path():
    assert normalize_path("spec.replicas") == ("spec", "replicas")
    assert normalize_path("spec", "replicas") == ("spec", "replicas")
    with pytest.raises(ValueError):
        normalize_path()
    with pytest.raises(ValueError):
        normalize_path("spec..replicas")


def test_requires_mapping():
    with pytest.raises(TypeError):
        UnstructuredObject(["not", "a", "map"])


@pytest.mark.parametrize(
    "field, value",
    [
        ("annotations", "not-a-map"),
        ("labels", ["pool", "gpu"]),
        ("ownerReferences", {"kind": "MachineDeployment"}),
        ("ownerReferences", ["MachineDeployment/workers"]),
    ],
)
def test_metadata_accessors_reject_wrong_types(field, value):
    obj = _obj()
    obj = obj.with_nested_field(value, "metadata", field)
    accessor = {
        "annotations": lambda: obj.annotation("a"),
        "labels": lambda: obj.labels,
        "ownerReferences": lambda: obj.owner_references,
    }[field]
    with pytest.raises(TypeMismatchError) as excinfo:
        accessor()
    assert f"metadata.{field}" in str(excinfo.value)
    assert excinfo.value.name == "workers"


def test_metadata_accessors_treat_null_as_absent():
    obj = _obj().with_nested_field(None, "metadata", "annotations")
    assert obj.annotations == {}
    assert obj.annotation("a") == (None, False)
    assert obj.owner_references == []
