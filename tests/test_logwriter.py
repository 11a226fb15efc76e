"""Tests for de-duplicated usage logging."""

from datetime import datetime
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from tests.conftest import add_log, set_powers
from theft_monitor.logwriter import LogWriter
from theft_monitor.models import Alert, Cadence, UsageLogEntry

NOW = datetime(2025, 3, 14, 10, 30, 15, 123456)
BUCKET = datetime(2025, 3, 14, 10, 30)

BALANCED = {"A-001": 700.0, "A-002": 200.0, "A-003": 250.0, "A-004": 150.0, "A-005": 100.0}


def test_record_creates_entry(bootstrapped):
    set_powers(bootstrapped, BALANCED)

    entry = LogWriter(bootstrapped).record_if_absent("short", NOW)

    assert entry is not None
    assert entry.bucket == BUCKET
    assert entry.cadence is Cadence.SHORT
    assert entry.source_power == 700.0
    assert entry.sink_power == 100.0
    assert entry.branch_total == 600.0
    assert entry.loss == 0.0
    assert entry.alert is Alert.NO_THEFT

    (stored,) = bootstrapped.recent_logs(Cadence.SHORT, 10)
    assert stored.id == entry.id
    assert stored.bucket == BUCKET


def test_record_twice_in_same_minute_is_idempotent(bootstrapped):
    set_powers(bootstrapped, BALANCED)
    writer = LogWriter(bootstrapped)

    assert writer.record_if_absent("short", datetime(2025, 3, 14, 10, 30, 1)) is not None
    assert writer.record_if_absent("short", datetime(2025, 3, 14, 10, 30, 59)) is None

    assert len(bootstrapped.recent_logs(Cadence.SHORT, 10)) == 1


def test_record_next_minute_creates_new_entry(bootstrapped):
    set_powers(bootstrapped, BALANCED)
    writer = LogWriter(bootstrapped)

    writer.record_if_absent("daily", datetime(2025, 3, 14, 10, 30, 59))
    writer.record_if_absent("daily", datetime(2025, 3, 14, 10, 31, 0))

    logs = bootstrapped.recent_logs(Cadence.SHORT, 10)
    assert [e.bucket.minute for e in logs] == [30, 31]


def test_cadences_use_separate_keys(bootstrapped):
    set_powers(bootstrapped, BALANCED)
    writer = LogWriter(bootstrapped)

    assert writer.record_if_absent(Cadence.SHORT, NOW) is not None
    assert writer.record_if_absent(Cadence.LONG, NOW) is not None

    assert len(bootstrapped.recent_logs(Cadence.SHORT, 10)) == 1
    assert len(bootstrapped.recent_logs(Cadence.LONG, 10)) == 1


def test_nonzero_loss_alerts(bootstrapped):
    # 0.2% loss: well inside the live tolerance
    set_powers(bootstrapped, {**BALANCED, "A-001": 701.5})

    entry = LogWriter(bootstrapped).record_if_absent("monthly", NOW)

    assert entry.loss == 1.5
    assert entry.alert is Alert.THEFT_DETECTED


def test_negative_loss_alerts(bootstrapped):
    set_powers(bootstrapped, {**BALANCED, "A-001": 650.0})

    entry = LogWriter(bootstrapped).record_if_absent("short", NOW)

    assert entry.loss == -50.0
    assert entry.alert is Alert.THEFT_DETECTED


def test_loss_is_rounded(bootstrapped):
    set_powers(bootstrapped, {**BALANCED, "A-001": 700.123456})

    entry = LogWriter(bootstrapped).record_if_absent("short", NOW)

    assert entry.loss == 0.12


def test_empty_meter_set_is_noop(store):
    assert LogWriter(store).record_if_absent("short", NOW) is None
    assert store.recent_logs(Cadence.SHORT, 10) == []


def test_uses_injected_clock(bootstrapped):
    writer = LogWriter(bootstrapped, clock=lambda: NOW)
    entry = writer.record_if_absent("long")
    assert entry.bucket == BUCKET
    assert entry.cadence is Cadence.LONG


def test_storage_constraint_backs_up_existence_check(bootstrapped):
    """A concurrent writer that inserted after the check is not an error."""
    set_powers(bootstrapped, BALANCED)
    add_log(bootstrapped, BUCKET)

    with patch.object(bootstrapped, "find_log", return_value=None):
        assert LogWriter(bootstrapped).record_if_absent("short", NOW) is None

    assert len(bootstrapped.recent_logs(Cadence.SHORT, 10)) == 1


def test_read_failure_is_logged_and_retried(bootstrapped, caplog):
    set_powers(bootstrapped, BALANCED)
    writer = LogWriter(bootstrapped)

    with patch.object(
        bootstrapped, "list_meters", side_effect=OperationalError("SELECT", {}, Exception("gone"))
    ):
        assert writer.record_if_absent("short", NOW) is None
    assert "Failed to save daily log" in caplog.text

    assert isinstance(writer.record_if_absent("short", NOW), UsageLogEntry)
