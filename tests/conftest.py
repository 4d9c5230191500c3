"""
Shared pytest fixtures.
"""

from __future__ import annotations

import logging
import threading

import pytest

from capiscale.core.config import ControllerConfig, reset_controller_config
from capiscale.core.controllers import Controller
from capiscale.core.discovery import ResourceIdentityResolver
from tests.fakes import FakeCluster

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(threadName)s %(message)s", force=True)
logging.getLogger("capiscale").setLevel(logging.DEBUG)


@pytest.fixture(autouse=True)
def clear_config(monkeypatch):
    for key in ("CAPISCALE_CONFIG", "CAPI_GROUP", "CAPI_VERSION"):
        monkeypatch.delenv(key, raising=False)
    reset_controller_config()
    yield
    reset_controller_config()


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def controller_config():
    return ControllerConfig(resync_period_seconds=0, watch_timeout_seconds=1, sync_timeout_seconds=5)


@pytest.fixture
def make_controller(cluster, controller_config):
    """Build and start controllers over ``cluster``; all are stopped on teardown."""
    started = []

    def _make(config=None, stop_event: threading.Event | None = None, start: bool = True) -> Controller:
        instance = Controller(
            ResourceIdentityResolver(cluster),
            cluster.scale_client(),
            cluster.list_watch,
            config=config or controller_config,
            stop_event=stop_event,
        )
        started.append(instance)
        if start:
            instance.start()
        return instance

    try:
        yield _make
    finally:
        for instance in started:
            instance.stop()


@pytest.fixture
def controller(make_controller):
    return make_controller()
