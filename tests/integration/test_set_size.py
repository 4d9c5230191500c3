"""
Scale writes go to the server; cached reads converge once the watch delivers them.
"""

import pytest

from capiscale.core.entities.bounds import max_size_annotation_key, min_size_annotation_key
from capiscale.core.errors import NotFoundError
from capiscale.core.informer import EventWaiter, ResourceEventHandler
from tests.fakes import FakeCluster, machine_deployment, machine_set

BOUNDS = {min_size_annotation_key(): "1", max_size_annotation_key(): "10"}
FACTORIES = pytest.mark.parametrize("factory", [machine_set, machine_deployment], ids=["MachineSet", "MachineDeployment"])


def _wait_for_replicas(controller, kind, replicas, timeout=1.0):
    waiter = EventWaiter(lambda obj: controller.new_scalable_resource(obj).replicas() == replicas)
    controller.add_event_handler(kind, waiter.handler)
    try:
        return waiter.wait(timeout)
    finally:
        controller.remove_event_handler(kind, waiter.handler)


@FACTORIES
def test_set_size(cluster: FakeCluster, make_controller, factory):
    obj = cluster.create(factory("workers", replicas=1, annotations=BOUNDS))
    controller = make_controller()
    sr = controller.scalable_resource(obj["kind"], "default", "workers")

    sr.set_size(5)

    group_resource = sr.group_version_resource().group_resource()
    scale = controller.scale_client.get(group_resource, "default", "workers")
    assert scale.spec_replicas == 5


@FACTORIES
def test_replicas_converge_after_set_size(cluster: FakeCluster, make_controller, factory):
    obj = cluster.create(factory("workers", replicas=1, annotations=BOUNDS))
    controller = make_controller()
    kind = obj["kind"]
    sr = controller.scalable_resource(kind, "default", "workers")
    assert sr.replicas() == 1

    sr.set_size(5)
    _wait_for_replicas(controller, kind, 5)

    assert controller.scalable_resource(kind, "default", "workers").replicas() == 5


@FACTORIES
def test_set_size_and_replicas(cluster: FakeCluster, make_controller, factory):
    """旧快照保持不变，重新获取的包装对象看到新值。"""
    obj = cluster.create(factory("workers", replicas=1, annotations=BOUNDS))
    controller = make_controller()
    kind = obj["kind"]
    sr = controller.scalable_resource(kind, "default", "workers")

    sr.set_size(5)
    _wait_for_replicas(controller, kind, 5)

    assert sr.replicas() == 1
    assert sr.refresh().replicas() == 5


def test_external_change_reaches_cache(cluster: FakeCluster, make_controller):
    cluster.create(machine_set("workers", replicas=1))
    controller = make_controller()

    cluster.mutate("MachineSet", "default", "workers", lambda obj: obj["spec"].update(replicas=3))
    _wait_for_replicas(controller, "MachineSet", 3)
    assert controller.scalable_resource("MachineSet", "default", "workers").replicas() == 3


@FACTORIES
def test_deleted_resource_is_gone(cluster: FakeCluster, make_controller, factory):
    obj = cluster.create(factory("workers", replicas=2))
    controller = make_controller()
    kind = obj["kind"]
    sr = controller.scalable_resource(kind, "default", "workers")

    waiter = EventWaiter(lambda deleted: deleted["metadata"]["name"] == "workers")
    controller.add_event_handler(kind, ResourceEventHandler(on_delete=waiter.handler.on_add))
    cluster.delete(kind, "default", "workers")
    waiter.wait(1.0)

    with pytest.raises(NotFoundError):
        controller.get_resource(kind, "default", "workers")
    with pytest.raises(NotFoundError):
        sr.refresh()
    with pytest.raises(NotFoundError):
        sr.set_size(3)
    # the old snapshot is still readable
    assert sr.replicas() == 2
