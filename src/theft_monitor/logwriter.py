import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from theft_monitor.analysis import aggregate, log_alert
from theft_monitor.clock import minute_bucket, utcnow
from theft_monitor.models import Cadence, UsageLogEntry
from theft_monitor.store import Store

logger = logging.getLogger(__name__)


class LogWriter:
    """Writes at most one usage log per (minute bucket, cadence)."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def record_if_absent(
        self, cadence: Cadence | str, now: datetime | None = None
    ) -> UsageLogEntry | None:
        """Snapshot current meter state into a log entry for this minute.

        Returns the new entry, or None when nothing was written (no meters,
        bucket already logged, or a storage failure).
        """
        cadence = Cadence.parse(cadence)
        bucket = minute_bucket(now or self._clock())

        try:
            meters = self._store.list_meters()
            if not meters:
                return None

            agg = aggregate(meters)
            loss = round(agg.loss, 2)

            if self._store.find_log(bucket, cadence) is not None:
                logger.debug("%s log for %s already exists", cadence.value, bucket)
                return None

            entry = UsageLogEntry(
                bucket=bucket,
                cadence=cadence,
                source_power=agg.source_power,
                sink_power=agg.sink_power,
                branch_total=agg.branch_total,
                loss=loss,
                alert=log_alert(agg.loss),
            )
            if not self._store.add_log(entry):
                return None
        except SQLAlchemyError:
            logger.exception("Failed to save %s log", cadence.value)
            return None

        logger.info("%s log saved | loss=%sW | status=%s", cadence.value, loss, entry.alert.value)
        return entry
