"""Shared test fixtures."""

import random
from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from theft_monitor.api import build_router
from theft_monitor.config import AppConfig
from theft_monitor.engine import MonitorEngine
from theft_monitor.models import Cadence, MeterRole, UsageLogEntry
from theft_monitor.registry import ensure_bootstrap
from theft_monitor.store import Store


class FakeClock:
    """A settable clock returning naive UTC datetimes."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


START = datetime(2025, 3, 14, 10, 30, 15)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def store():
    s = Store("sqlite://")
    s.create_all()
    yield s
    s.dispose()


@pytest.fixture
def file_store(tmp_path):
    """On-disk store for tests where scheduler threads write concurrently."""
    s = Store(f"sqlite:///{tmp_path / 'monitor.db'}")
    s.create_all()
    yield s
    s.dispose()


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def bootstrapped(store, config):
    """Store holding the default five meters."""
    ensure_bootstrap(store, config.meters)
    return store


@pytest.fixture
def engine(bootstrapped, config, clock):
    return MonitorEngine(bootstrapped, config, rng=random.Random(7), clock=clock)


@pytest.fixture
def client(engine):
    """FastAPI test client over the engine (no lifespan)."""
    test_app = FastAPI()
    test_app.include_router(build_router(engine))
    with TestClient(test_app) as c:
        yield c


def set_powers(store: Store, powers: dict[str, float]) -> None:
    for meter_id, power in powers.items():
        store.update_meter(meter_id, power=power)


def add_log(
    store: Store, bucket: datetime, cadence: Cadence = Cadence.SHORT, loss: float = 0.0
) -> UsageLogEntry:
    entry = UsageLogEntry(
        bucket=bucket,
        cadence=cadence,
        source_power=1000.0,
        sink_power=100.0,
        branch_total=900.0 - loss,
        loss=loss,
    )
    assert store.add_log(entry)
    return entry


ROLES = {
    "A-001": MeterRole.SOURCE,
    "A-002": MeterRole.BRANCH,
    "A-003": MeterRole.BRANCH,
    "A-004": MeterRole.BRANCH,
    "A-005": MeterRole.SINK,
}
