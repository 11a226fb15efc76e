"""Network aggregation and loss classification."""

from collections.abc import Iterable
from dataclasses import dataclass

from theft_monitor.models import Alert, Meter, MeterRole

# Live status tolerance, percent of source power
DEFAULT_TOLERANCE_PERCENT = 5.0
# Logging-path threshold, fraction of the loss itself
LOG_THRESHOLD_FRACTION = 0.05

NO_DATA = "No Data"


@dataclass(frozen=True)
class Aggregate:
    """Network-level power figures derived from one meter snapshot."""

    source_power: float = 0.0
    sink_power: float = 0.0
    branch_total: float = 0.0
    loss: float = 0.0
    has_data: bool = False


@dataclass(frozen=True)
class LiveStatus:
    aggregate: Aggregate
    alert: Alert
    loss_percent: float


def aggregate(meters: Iterable[Meter]) -> Aggregate:
    """Sum source, sink and branch power. Missing roles count as zero."""
    meters = list(meters)
    if not meters:
        return Aggregate()

    source = next((m for m in meters if m.role == MeterRole.SOURCE), None)
    sink = next((m for m in meters if m.role == MeterRole.SINK), None)
    source_power = (source.power or 0.0) if source else 0.0
    sink_power = (sink.power or 0.0) if sink else 0.0
    branch_total = sum((m.power or 0.0) for m in meters if m.role == MeterRole.BRANCH)

    return Aggregate(
        source_power=source_power,
        sink_power=sink_power,
        branch_total=branch_total,
        loss=source_power - sink_power - branch_total,
        has_data=True,
    )


def loss_percent(source_power: float, loss: float) -> float:
    if source_power == 0:
        return 0.0
    return abs(loss) * 100 / source_power


def classify(
    source_power: float, loss: float, tolerance_percent: float = DEFAULT_TOLERANCE_PERCENT
) -> Alert:
    """Classify loss against a percentage of source power.

    A zero source reads as no theft. The boundary itself is no theft.
    """
    if source_power == 0:
        return Alert.NO_THEFT
    if loss_percent(source_power, loss) > tolerance_percent:
        return Alert.THEFT_DETECTED
    return Alert.NO_THEFT


def log_alert(loss: float) -> Alert:
    """Alert rule used when writing usage logs.

    The threshold is a fraction of the loss itself, so any non-zero loss
    alerts. This differs from :func:`classify` and is kept separate.
    """
    threshold = abs(loss * LOG_THRESHOLD_FRACTION)
    if abs(round(loss, 2)) <= threshold:
        return Alert.NO_THEFT
    return Alert.THEFT_DETECTED


def live_status(meters: Iterable[Meter], tolerance_percent: float = DEFAULT_TOLERANCE_PERCENT) -> LiveStatus:
    agg = aggregate(meters)
    return LiveStatus(
        aggregate=agg,
        alert=classify(agg.source_power, agg.loss, tolerance_percent),
        loss_percent=loss_percent(agg.source_power, agg.loss),
    )
