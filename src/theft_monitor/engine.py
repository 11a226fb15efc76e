"""The monitoring engine: simulation, detection and usage logging for one street."""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from theft_monitor.analysis import LiveStatus, live_status
from theft_monitor.clock import SyncClock, utcnow
from theft_monitor.config import AppConfig
from theft_monitor.generator import ReadingGenerator
from theft_monitor.logwriter import LogWriter
from theft_monitor.models import Cadence, Meter, UsageLogEntry
from theft_monitor.registry import ensure_bootstrap
from theft_monitor.scheduler import Scheduler
from theft_monitor.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Health:
    network: str  # Online, Partial or Offline
    accuracy: float
    active_meters: int
    last_sync: datetime | None


class MonitorEngine:
    """Owns the scheduler and every piece of mutable simulation state.

    Construct once per process and hand it to the HTTP layer.
    """

    def __init__(
        self,
        store: Store,
        config: AppConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._config = config or AppConfig()
        self.sync_clock = SyncClock()
        self.generator = ReadingGenerator(
            store, self.sync_clock, self._config.simulation, rng=rng, clock=clock
        )
        self.log_writer = LogWriter(store, clock=clock)
        self._scheduler: Scheduler | None = None

    @property
    def started(self) -> bool:
        return self._scheduler is not None

    def bootstrap(self) -> int:
        return ensure_bootstrap(self._store, self._config.meters)

    def _build_scheduler(self) -> Scheduler:
        sim = self._config.simulation
        scheduler = Scheduler()
        scheduler.add("readings", sim.reading_interval, self.generator.tick)
        scheduler.add(
            "log-daily",
            sim.short_log_interval,
            lambda: self.log_writer.record_if_absent(Cadence.SHORT),
        )
        scheduler.add(
            "log-monthly",
            sim.long_log_interval,
            lambda: self.log_writer.record_if_absent(Cadence.LONG),
        )
        return scheduler

    async def start(self) -> None:
        if self._scheduler is not None:
            logger.info("Simulation already running, skipping re-init")
            return
        self._scheduler = self._build_scheduler()
        await asyncio.to_thread(self.bootstrap)
        await self._scheduler.start()
        sim = self._config.simulation
        logger.info(
            "Meter simulation started: readings every %.0fs, logs every %.0fs (daily) / %.0fs (monthly)",
            sim.reading_interval,
            sim.short_log_interval,
            sim.long_log_interval,
        )

    async def stop(self, timeout: float | None = None) -> None:
        if self._scheduler is None:
            return
        await self._scheduler.stop(timeout=timeout)
        self._scheduler = None

    # ── Accessors ────────────────────────────────────────────────────

    def get_meter_snapshot(self) -> list[Meter]:
        try:
            return self._store.list_meters()
        except SQLAlchemyError:
            logger.exception("Failed to read meter snapshot")
            return []

    def get_aggregate_and_classification(self) -> LiveStatus:
        return live_status(self.get_meter_snapshot(), self._config.simulation.tolerance_percent)

    def get_recent_logs(self, cadence: Cadence | str, limit: int) -> list[UsageLogEntry]:
        cadence = Cadence.parse(cadence)
        if limit <= 0:
            return []
        try:
            return self._store.recent_logs(cadence, limit)
        except SQLAlchemyError:
            logger.exception("Failed to read %s logs", cadence.value)
            return []

    def delete_log(self, cadence: Cadence | str, selector: int | str) -> int:
        """Delete one daily entry by id, or every monthly entry in a month.

        Months are matched without a year.
        """
        cadence = Cadence.parse(cadence)
        selector = int(selector)
        if cadence is Cadence.SHORT:
            return self._store.delete_log(cadence, selector)
        if not 1 <= selector <= 12:
            raise ValueError(f"Invalid month: {selector}")
        return self._store.delete_logs_for_month(cadence, selector)

    def delete_all_logs(self, cadence: Cadence | str) -> int:
        return self._store.delete_logs(Cadence.parse(cadence))

    def last_sync(self) -> datetime | None:
        return self.sync_clock.last_sync()

    def health(self) -> Health:
        meters = self.get_meter_snapshot()
        total = len(meters)
        active = sum(1 for m in meters if (m.power or 0) > 0)
        if active == 0:
            network = "Offline"
        elif active == total:
            network = "Online"
        else:
            network = "Partial"
        accuracy = round(active / total * 100, 1) if total else 0.0
        return Health(network=network, accuracy=accuracy, active_meters=active, last_sync=self.last_sync())
