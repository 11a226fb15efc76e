"""Tests for meter bootstrap."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from tests.conftest import ROLES
from theft_monitor.config import MeterDefinition
from theft_monitor.models import MeterRole, MeterStatus
from theft_monitor.registry import ensure_bootstrap


def test_bootstrap_inserts_defaults(store, config):
    assert ensure_bootstrap(store, config.meters) == 5

    meters = store.list_meters()
    assert {m.meter_id: m.role for m in meters} == ROLES
    street = meters[0]
    assert street.name == "Street Input"
    assert street.power == 0.0
    assert street.units == 0.0
    assert street.status is MeterStatus.ONLINE
    assert street.last_updated is not None


def test_bootstrap_twice_keeps_one_meter_per_id(store, config):
    ensure_bootstrap(store, config.meters)
    ensure_bootstrap(store, config.meters)

    meters = store.list_meters()
    assert len(meters) == 5
    assert sorted(m.meter_id for m in meters) == sorted(ROLES)


def test_bootstrap_preserves_readings(store, config):
    ensure_bootstrap(store, config.meters)
    store.update_meter("A-002", power=120.0, units=33.5)

    ensure_bootstrap(store, config.meters)

    house = next(m for m in store.list_meters() if m.meter_id == "A-002")
    assert house.power == 120.0
    assert house.units == 33.5


def test_bootstrap_overwrites_defined_fields(store):
    ensure_bootstrap(store, [MeterDefinition(id="H", name="Old", role=MeterRole.BRANCH, owner="Ana")])
    ensure_bootstrap(store, [MeterDefinition(id="H", name="New", role=MeterRole.BRANCH)])

    (meter,) = store.list_meters()
    assert meter.name == "New"
    # Absent in the second definition, so left as is
    assert meter.owner == "Ana"


def test_bootstrap_failure_is_skipped(store, config):
    original = store.upsert_meter

    def flaky(meter_id, fields):
        if meter_id == "A-003":
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return original(meter_id, fields)

    with patch.object(store, "upsert_meter", side_effect=flaky):
        applied = ensure_bootstrap(store, config.meters)

    assert applied == 4
    assert sorted(m.meter_id for m in store.list_meters()) == ["A-001", "A-002", "A-004", "A-005"]
