"""Synthetic meter readings for the simulated street."""

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from theft_monitor.analysis import Aggregate
from theft_monitor.clock import SyncClock, utcnow
from theft_monitor.config import SimulationConfig
from theft_monitor.models import Meter, MeterRole, MeterStatus
from theft_monitor.store import Store

logger = logging.getLogger(__name__)


@dataclass
class Reading:
    """One meter's values for a single tick."""

    meter_id: str
    role: MeterRole
    power: float
    voltage: float
    current: float
    units: float  # Cumulative, including this tick
    status: MeterStatus
    updated_at: datetime


class ReadingGenerator:
    """Recomputes every meter from stored state once per tick.

    Branches and the sink are sampled. The source is the exact sum of
    branches and sink, so it conserves its downstream consumers.
    """

    def __init__(
        self,
        store: Store,
        sync_clock: SyncClock,
        config: SimulationConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._sync_clock = sync_clock
        self._config = config or SimulationConfig()
        self._rng = rng or random.Random(self._config.seed)
        self._clock = clock

    def _reading(self, meter: Meter, power: float, now: datetime) -> Reading:
        voltage = self._config.voltage
        return Reading(
            meter_id=meter.meter_id,
            role=meter.role,
            power=power,
            voltage=voltage,
            current=round(power / voltage, 2),
            units=(meter.units or 0.0) + power / 100,
            status=MeterStatus.ONLINE,
            updated_at=now,
        )

    def _persist(self, reading: Reading) -> bool:
        try:
            self._store.update_meter(
                reading.meter_id,
                power=reading.power,
                voltage=reading.voltage,
                current=reading.current,
                units=reading.units,
                status=reading.status,
                last_updated=reading.updated_at,
            )
        except (SQLAlchemyError, LookupError):
            logger.exception("Failed to write reading for meter %s", reading.meter_id)
            return False
        return True

    def tick(self, now: datetime | None = None) -> Aggregate | None:
        """Run one reading tick. Returns the new aggregate, or None if meters could not be read."""
        now = now or self._clock()
        try:
            meters = self._store.list_meters()
        except SQLAlchemyError:
            logger.exception("Failed to read meters for reading tick")
            return None

        branches = [m for m in meters if m.role == MeterRole.BRANCH]
        sink = next((m for m in meters if m.role == MeterRole.SINK), None)
        source = next((m for m in meters if m.role == MeterRole.SOURCE), None)

        readings: list[Reading] = []
        low, high = self._config.branch_power
        for meter in branches:
            readings.append(self._reading(meter, self._rng.randint(low, high), now))
        branch_total = sum(r.power for r in readings)

        sink_power = 0
        if sink is not None:
            low, high = self._config.sink_power
            sink_power = self._rng.randint(low, high)
            readings.append(self._reading(sink, sink_power, now))

        source_power = 0
        if source is not None:
            source_power = branch_total + sink_power
            readings.append(self._reading(source, source_power, now))

        ok = True
        for reading in readings:
            ok = self._persist(reading) and ok

        if ok:
            self._sync_clock.stamp_now(now)
        else:
            logger.warning("Reading tick at %s finished with write failures", now.isoformat())

        logger.debug(
            "Reading tick: source=%s sink=%s branches=%s", source_power, sink_power, branch_total
        )
        return Aggregate(
            source_power=source_power,
            sink_power=sink_power,
            branch_total=branch_total,
            loss=source_power - sink_power - branch_total,
            has_data=bool(meters),
        )
