"""HTTP API over the monitoring engine: live status, health and usage logs."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException

from theft_monitor.analysis import NO_DATA, Aggregate, LiveStatus
from theft_monitor.clock import utcnow
from theft_monitor.engine import Health, MonitorEngine
from theft_monitor.models import Cadence, Meter, MeterStatus, UsageLogEntry

logger = logging.getLogger(__name__)

# Default page sizes per cadence
DEFAULT_LOG_LIMITS = {Cadence.SHORT: 7, Cadence.LONG: 6}


# ── Response builders ────────────────────────────────────────────────


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value is not None else None


def meter_summary(meter: Meter) -> dict[str, Any]:
    power = meter.power or 0.0
    return {
        "meterId": meter.meter_id,
        "name": meter.name,
        "role": meter.role.value,
        "voltage": meter.voltage or 0.0,
        "current": meter.current or 0.0,
        "power": power,
        "units": round(meter.units or 0.0, 2),
        "status": (MeterStatus.ONLINE if power > 0 else MeterStatus.OFFLINE).value,
        "lastUpdated": _iso(meter.last_updated),
    }


def analysis_summary(agg: Aggregate) -> dict[str, Any]:
    """Power summary. An empty network carries the No Data marker."""
    if not agg.has_data:
        status = {"type": NO_DATA, "message": "No meters found in database."}
    else:
        status = {"type": "No Theft", "message": "Live readings normal, theft check runs on logs"}
    return {
        "streetInputPower": round(agg.source_power, 2),
        "toNextPower": round(agg.sink_power, 2),
        "totalHousePower": round(agg.branch_total, 2),
        "powerLoss": round(agg.loss, 2),
        "status": status,
    }


def system_status(live: LiveStatus, meters: list[Meter]) -> dict[str, Any]:
    agg = live.aggregate
    return {
        "streetInputPower": agg.source_power,
        "houseTotalPower": agg.branch_total,
        "toNextPower": agg.sink_power,
        "powerLoss": agg.loss,
        "lossPercent": round(live.loss_percent, 2),
        "theftStatus": live.alert.value,
        "meterStatus": [
            {
                "id": m.meter_id,
                "name": m.name,
                "watts": m.power or 0.0,
                "voltage": m.voltage or 0.0,
                "current": m.current or 0.0,
                "status": m.status.value,
            }
            for m in meters
        ],
        "timestamp": _iso(utcnow()),
    }


def health_summary(health: Health) -> dict[str, Any]:
    return {
        "network": health.network,
        "accuracy": health.accuracy,
        "activeMeters": health.active_meters,
        "lastSync": _iso(health.last_sync),
    }


def log_entry(entry: UsageLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "date": _iso(entry.bucket),
        "logType": entry.cadence.value,
        "streetInput": entry.source_power,
        "toNext": entry.sink_power,
        "houseTotal": entry.branch_total,
        "powerLoss": entry.loss,
        "theftAlert": entry.alert.value,
    }


# ── Router ───────────────────────────────────────────────────────────


def _cadence_or_400(value: str) -> Cadence:
    try:
        return Cadence.parse(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def build_router(engine: MonitorEngine) -> APIRouter:
    router = APIRouter(prefix="/api")

    @router.get("/meters")
    def list_meters():
        """All meters plus a power summary."""
        meters = engine.get_meter_snapshot()
        live = engine.get_aggregate_and_classification()
        return {
            "meters": [meter_summary(m) for m in meters],
            "analysis": analysis_summary(live.aggregate),
        }

    @router.get("/system/status")
    def get_system_status():
        """Live loss classification against source power."""
        meters = engine.get_meter_snapshot()
        live = engine.get_aggregate_and_classification()
        return system_status(live, meters)

    @router.get("/system/health")
    def get_system_health():
        return health_summary(engine.health())

    @router.get("/logs/{cadence}")
    def get_logs(cadence: str, limit: int | None = None):
        """Most recent logs of a cadence, oldest first."""
        parsed = _cadence_or_400(cadence)
        if limit is None:
            limit = DEFAULT_LOG_LIMITS[parsed]
        return [log_entry(e) for e in engine.get_recent_logs(parsed, limit)]

    @router.delete("/logs/{cadence}/{selector}")
    def delete_log(cadence: str, selector: int):
        parsed = _cadence_or_400(cadence)
        try:
            deleted = engine.delete_log(parsed, selector)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if deleted == 0:
            raise HTTPException(status_code=404, detail=f"No {parsed.value} logs found for {selector}")
        logger.info("Deleted %d %s log(s) for %s", deleted, parsed.value, selector)
        return {"message": f"Deleted {deleted} {parsed.value} log(s)", "deleted": deleted}

    @router.delete("/logs/{cadence}")
    def delete_all_logs(cadence: str):
        parsed = _cadence_or_400(cadence)
        deleted = engine.delete_all_logs(parsed)
        logger.info("Deleted all %s logs (%d)", parsed.value, deleted)
        return {"message": f"All {parsed.value} logs deleted", "deleted": deleted}

    return router
