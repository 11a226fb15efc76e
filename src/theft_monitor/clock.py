import threading
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minute_bucket(moment: datetime) -> datetime:
    """Truncate a timestamp to the start of its minute."""
    return moment.replace(second=0, microsecond=0)


class SyncClock:
    """Time of the most recent successful reading tick."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None

    def stamp_now(self, now: datetime | None = None) -> datetime:
        stamp = now or utcnow()
        with self._lock:
            self._last = stamp
        return stamp

    def last_sync(self) -> datetime | None:
        """Return the last stamp, or None if no tick has completed yet."""
        with self._lock:
            return self._last
