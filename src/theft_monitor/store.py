"""SQLAlchemy-backed storage for meters and usage logs."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import create_engine, delete, extract, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from theft_monitor.clock import utcnow
from theft_monitor.models import Base, Cadence, Meter, UsageLogEntry

logger = logging.getLogger(__name__)


class Store:
    """Session-per-operation access to the meter and usage log tables.

    Returned records are detached from their session and safe to read
    from any thread.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            # Scheduler task bodies run in worker threads
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **kwargs)
        self._session = sessionmaker(self._engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    # ── Meters ───────────────────────────────────────────────────────

    def upsert_meter(self, meter_id: str, fields: dict[str, Any]) -> bool:
        """Insert or update a meter by id. Returns True if a row was inserted.

        Only the keys in ``fields`` are written to an existing row.
        """
        with self._session.begin() as session:
            meter = session.get(Meter, meter_id)
            if meter is None:
                session.add(Meter(meter_id=meter_id, last_updated=utcnow(), **fields))
                return True
            for key, value in fields.items():
                setattr(meter, key, value)
            return False

    def list_meters(self) -> list[Meter]:
        with self._session() as session:
            return list(session.scalars(select(Meter).order_by(Meter.meter_id)))

    def update_meter(self, meter_id: str, **values: Any) -> None:
        with self._session.begin() as session:
            result = session.execute(
                update(Meter).where(Meter.meter_id == meter_id).values(**values)
            )
            if result.rowcount == 0:
                raise LookupError(f"Meter {meter_id!r} does not exist")

    def delete_meters(self) -> int:
        with self._session.begin() as session:
            return session.execute(delete(Meter)).rowcount

    # ── Usage logs ───────────────────────────────────────────────────

    def find_log(self, bucket: datetime, cadence: Cadence) -> UsageLogEntry | None:
        with self._session() as session:
            return session.scalars(
                select(UsageLogEntry).where(
                    UsageLogEntry.bucket == bucket, UsageLogEntry.cadence == cadence
                )
            ).first()

    def add_log(self, entry: UsageLogEntry) -> bool:
        """Persist a log entry. Returns False if the (bucket, cadence) pair exists."""
        try:
            with self._session.begin() as session:
                session.add(entry)
        except IntegrityError:
            logger.debug("Log for %s/%s already stored", entry.cadence.value, entry.bucket)
            return False
        return True

    def recent_logs(self, cadence: Cadence, limit: int) -> list[UsageLogEntry]:
        """Return the newest ``limit`` entries of a cadence, oldest first."""
        with self._session() as session:
            rows = list(
                session.scalars(
                    select(UsageLogEntry)
                    .where(UsageLogEntry.cadence == cadence)
                    .order_by(UsageLogEntry.bucket.desc())
                    .limit(limit)
                )
            )
        rows.reverse()
        return rows

    def delete_log(self, cadence: Cadence, entry_id: int) -> int:
        return self._delete_logs(
            UsageLogEntry.cadence == cadence, UsageLogEntry.id == entry_id
        )

    def delete_logs_for_month(self, cadence: Cadence, month: int) -> int:
        """Delete entries whose bucket falls in ``month``, in any year."""
        return self._delete_logs(
            UsageLogEntry.cadence == cadence,
            extract("month", UsageLogEntry.bucket) == month,
        )

    def delete_logs(self, cadence: Cadence) -> int:
        return self._delete_logs(UsageLogEntry.cadence == cadence)

    def _delete_logs(self, *criteria: Any) -> int:
        with self._session.begin() as session:
            result = session.execute(
                delete(UsageLogEntry)
                .where(*criteria)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
