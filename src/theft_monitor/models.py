"""Persisted meter and usage log records."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class MeterRole(str, Enum):
    SOURCE = "source"
    BRANCH = "branch"
    SINK = "sink"


class MeterStatus(str, Enum):
    ONLINE = "Online"
    OFFLINE = "Offline"


class Alert(str, Enum):
    NO_THEFT = "No Theft"
    THEFT_DETECTED = "Theft Detected"
    SYSTEM_FAULT = "System Fault"
    LIGHT_CUT_OFF = "Light Cut Off"


class Cadence(str, Enum):
    """Logging frequency. ``short``/``long`` are accepted as aliases."""

    SHORT = "daily"
    LONG = "monthly"

    @classmethod
    def parse(cls, value: "str | Cadence") -> "Cadence":
        if isinstance(value, Cadence):
            return value
        key = str(value).strip().lower()
        if key in ("short", "daily"):
            return cls.SHORT
        if key in ("long", "monthly"):
            return cls.LONG
        raise ValueError(f"Unknown cadence: {value!r}. Available: short, long, daily, monthly")


def _values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class Meter(Base):
    """A named meter in the street network."""

    __tablename__ = "meters"

    meter_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    owner: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[MeterRole] = mapped_column(
        SAEnum(MeterRole, values_callable=_values, native_enum=False, length=16),
        nullable=False,
    )

    power: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    voltage: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    current: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    units: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    status: Mapped[MeterStatus] = mapped_column(
        SAEnum(MeterStatus, values_callable=_values, native_enum=False, length=16),
        default=MeterStatus.ONLINE,
        nullable=False,
    )
    # Naive UTC
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Meter(id={self.meter_id}, role={self.role.value}, power={self.power})>"


class UsageLogEntry(Base):
    """Aggregated network snapshot for one (bucket, cadence) pair."""

    __tablename__ = "usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bucket: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    cadence: Mapped[Cadence] = mapped_column(
        SAEnum(Cadence, values_callable=_values, native_enum=False, length=16),
        nullable=False,
    )
    source_power: Mapped[float] = mapped_column(Float, nullable=False)
    sink_power: Mapped[float] = mapped_column(Float, nullable=False)
    branch_total: Mapped[float] = mapped_column(Float, nullable=False)
    loss: Mapped[float] = mapped_column(Float, nullable=False)
    alert: Mapped[Alert] = mapped_column(
        SAEnum(Alert, values_callable=_values, native_enum=False, length=32),
        default=Alert.NO_THEFT,
        nullable=False,
    )

    __table_args__ = (UniqueConstraint("bucket", "cadence", name="uq_usage_log_bucket_cadence"),)

    def __repr__(self) -> str:
        return (
            f"<UsageLogEntry(bucket={self.bucket:%Y-%m-%d %H:%M}, "
            f"cadence={self.cadence.value}, loss={self.loss})>"
        )
