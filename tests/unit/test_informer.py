import threading
import time
from types import SimpleNamespace

import pytest

from capiscale.core.entities.types import GroupVersionResource
from capiscale.core.informer import EventWaiter, Informer, KubernetesListWatch, ResourceEventHandler, object_key
from tests.fakes import CAPI_GROUP, CAPI_VERSION, FakeCluster, machine_set


class StaticListWatch:
    """List-only source; watch returns immediately."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)

    def list(self):
        return self.snapshots.pop(0)

    def watch(self, resource_version, timeout_seconds):
        return iter(())

    def stop(self):
        pass


class Recorder:
    def __init__(self):
        self.events = []
        self.handler = ResourceEventHandler(
            on_add=lambda obj: self.events.append(("add", object_key(obj))),
            on_update=lambda old, new: self.events.append(("update", object_key(new))),
            on_delete=lambda obj: self.events.append(("delete", object_key(obj))),
        )


def _obj(name, rv):
    obj = machine_set(name)
    obj["metadata"]["resourceVersion"] = rv
    return obj


@pytest.fixture
def informer_factory(cluster: FakeCluster):
    informers = []

    def _make(kind="MachineSet", namespace=None):
        informer = Informer(
            cluster.list_watch(None, kind, namespace),
            name=kind,
            resync_period_seconds=0,
            watch_timeout_seconds=1,
        )
        informers.append(informer)
        informer.start()
        assert informer.wait_for_sync(5)
        return informer

    try:
        yield _make
    finally:
        for informer in informers:
            informer.stop()


def test_full_resync_dispatches_differences():
    """重新 list 后按差异分发 add/update/delete。"""
    informer = Informer(
        StaticListWatch(
            ([_obj("a", "1"), _obj("b", "2")], "2"),
            ([_obj("a", "1"), _obj("b", "3"), _obj("c", "4")], "4"),
            ([_obj("c", "4")], "5"),
        ),
        name="static",
    )
    recorder = Recorder()
    informer.add_event_handler(recorder.handler)

    informer._full_resync()
    assert informer.has_synced
    assert sorted(recorder.events) == [("add", "default/a"), ("add", "default/b")]

    recorder.events.clear()
    informer._full_resync()
    assert sorted(recorder.events) == [("add", "default/c"), ("update", "default/b")]

    recorder.events.clear()
    informer._full_resync()
    assert sorted(recorder.events) == [("delete", "default/a"), ("delete", "default/b")]
    assert [object_key(obj) for obj in informer.list()] == ["default/c"]


def test_informer_tracks_watch_events(cluster: FakeCluster, informer_factory):
    cluster.create(machine_set("a", replicas=1))
    informer = informer_factory()
    assert informer.get("default", "a")["spec"]["replicas"] == 1

    deleted = threading.Event()
    informer.add_event_handler(ResourceEventHandler(on_delete=lambda obj: deleted.set()))

    waiter = EventWaiter(lambda obj: obj["spec"]["replicas"] == 4)
    informer.add_event_handler(waiter.handler)
    cluster.mutate("MachineSet", "default", "a", lambda obj: obj["spec"].update(replicas=4))
    assert waiter.wait(1.0)["metadata"]["name"] == "a"
    assert informer.get("default", "a")["spec"]["replicas"] == 4

    cluster.delete("MachineSet", "default", "a")
    assert deleted.wait(1.0)
    assert informer.get("default", "a") is None


def test_cached_objects_are_copies(cluster: FakeCluster, informer_factory):
    cluster.create(machine_set("a", replicas=1))
    informer = informer_factory()
    obj = informer.get("default", "a")
    obj["spec"]["replicas"] = 99
    assert informer.get("default", "a")["spec"]["replicas"] == 1


def test_new_handler_sees_existing_objects(cluster: FakeCluster, informer_factory):
    cluster.create(machine_set("a"))
    cluster.create(machine_set("b"))
    informer = informer_factory()
    recorder = Recorder()
    informer.add_event_handler(recorder.handler)
    assert sorted(recorder.events) == [("add", "default/a"), ("add", "default/b")]


def test_failing_handler_does_not_stop_delivery(cluster: FakeCluster, informer_factory):
    informer = informer_factory()

    def _boom(obj):
        raise RuntimeError("handler failure")

    informer.add_event_handler(ResourceEventHandler(on_add=_boom))
    waiter = EventWaiter(lambda obj: obj["metadata"]["name"] == "second")
    informer.add_event_handler(waiter.handler)

    cluster.create(machine_set("first"))
    cluster.create(machine_set("second"))
    assert waiter.wait(1.0)["metadata"]["name"] == "second"


def test_namespace_filter(cluster: FakeCluster, informer_factory):
    cluster.create(machine_set("a", namespace="team-a"))
    cluster.create(machine_set("b", namespace="team-b"))
    informer = informer_factory(namespace="team-a")
    assert [object_key(obj) for obj in informer.list()] == ["team-a/a"]


def test_stop_joins_thread(cluster: FakeCluster):
    informer = Informer(cluster.list_watch(None, "MachineSet", None), name="MachineSet", watch_timeout_seconds=30)
    informer.start()
    assert informer.wait_for_sync(5)
    started = time.monotonic()
    informer.stop()
    assert not informer.running
    assert time.monotonic() - started < 5


def test_event_waiter_times_out_with_last_error():
    waiter = EventWaiter(lambda obj: obj["spec"]["replicas"] == 5)
    waiter.handler.on_add({"metadata": {"name": "a"}})
    with pytest.raises(TimeoutError) as excinfo:
        waiter.wait(0.1)
    assert "timeout while waiting for update" in str(excinfo.value)
    assert isinstance(waiter.last_error, KeyError)


def test_handler_added_while_running_never_sees_stale_state(cluster: FakeCluster, informer_factory):
    """回放期间发生的修改必须在回放之后送达，最后看到的一定是最新状态。"""
    cluster.create(machine_set("a", replicas=1))
    cluster.create(machine_set("b", replicas=1))
    informer = informer_factory()
    seen_b = []

    def _on_add(obj):
        name = obj["metadata"]["name"]
        if name == "a" and not seen_b:
            cluster.mutate("MachineSet", "default", "b", lambda o: o["spec"].update(replicas=9))
            # give the watch thread time to race the replay
            time.sleep(0.3)
        elif name == "b":
            seen_b.append(("add", obj["spec"]["replicas"], int(obj["metadata"]["resourceVersion"])))

    def _on_update(old, new):
        if new["metadata"]["name"] == "b":
            seen_b.append(("update", new["spec"]["replicas"], int(new["metadata"]["resourceVersion"])))

    informer.add_event_handler(ResourceEventHandler(on_add=_on_add, on_update=_on_update))

    deadline = time.monotonic() + 2.0
    while time.monotonic() < deadline and not (seen_b and seen_b[-1][1] == 9):
        time.sleep(0.02)
    assert [event[:2] for event in seen_b] == [("add", 1), ("update", 9)]
    versions = [event[2] for event in seen_b]
    assert versions == sorted(versions)


class _StubbornListWatch:
    """Watch that ignores stop() and returns on its own after ``delay``."""

    def __init__(self, delay):
        self.delay = delay

    def list(self):
        return [], "1"

    def watch(self, resource_version, timeout_seconds):
        time.sleep(self.delay)
        return
        yield

    def stop(self):
        pass


def test_stop_keeps_thread_reference_until_joined():
    informer = Informer(_StubbornListWatch(1.0), name="MachineSet", watch_timeout_seconds=30)
    informer.start()
    assert informer.wait_for_sync(5)

    informer.stop(timeout=0.1)
    assert informer.running

    informer.stop(timeout=5)
    assert not informer.running


class _IdleWatchResponse:
    """Streaming response whose read blocks until its socket is shut down."""

    status = 200

    def __init__(self):
        self.streaming = threading.Event()
        self.shut_down = threading.Event()
        self.connection = SimpleNamespace(sock=self)

    def shutdown(self, how):
        self.shut_down.set()

    def stream(self, amt=None, decode_content=False):
        self.streaming.set()
        self.shut_down.wait(5)
        return iter(())

    read_chunked = stream

    def close(self):
        pass

    def release_conn(self):
        pass


class _IdleCustomObjectsApi:
    def __init__(self):
        self.response = _IdleWatchResponse()
        self.calls = []

    def list_cluster_custom_object(self, group, version, plural, **kwargs):
        self.calls.append(kwargs)
        return self.response


def test_list_watch_stop_interrupts_idle_read():
    api = _IdleCustomObjectsApi()
    list_watch = KubernetesListWatch(
        api, GroupVersionResource(CAPI_GROUP, CAPI_VERSION, "machinesets"), "MachineSet"
    )
    events = []
    reader = threading.Thread(target=lambda: events.extend(list_watch.watch("5", 60)), daemon=True)
    reader.start()
    assert api.response.streaming.wait(2)

    list_watch.stop()
    reader.join(2)
    assert not reader.is_alive()
    assert api.response.shut_down.is_set()
    assert events == []
    assert api.calls[0]["watch"] is True
    assert api.calls[0]["_request_timeout"] == (10, 65)
