from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..core.timeutil import now_utc
from ..domain.errors import ConfigurationError
from ..domain.models import Device
from ..drivers.plug_sim import SimulatedPlugFleet
from ..services.scheduler import PollScheduler
from ..services.state_writer import StateWriter
from ..storage.sqlite_repo import SQLiteRepository
from .schemas import SimPlugUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# Placeholders that main.py replaces via app.dependency_overrides.
def get_scheduler() -> PollScheduler:  # overridden in main
    raise RuntimeError("Scheduler dependency not configured")

def get_repo() -> SQLiteRepository:  # overridden in main
    raise RuntimeError("Repo dependency not configured")

def get_writer() -> StateWriter:  # overridden in main
    raise RuntimeError("State writer dependency not configured")

def get_fleet() -> SimulatedPlugFleet:  # overridden in main
    raise RuntimeError("Simulated plugs not available (mode is not 'sim')")


def _device_out(device: Device) -> dict:
    return {
        "id": device.id,
        "name": device.name,
        "external_id": device.external_id,
        "features": [
            {
                "external_id": ch.external_id,
                "name": ch.name,
                "category": ch.category.value,
                "type": ch.kind.value,
                "last_value": ch.last_value,
            }
            for ch in device.channels
        ],
    }


async def _require_device(device_id: str, repo: SQLiteRepository) -> Device:
    device = await repo.get_device(device_id)
    if device is None:
        raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
    return device


@router.get("/live")
async def get_live(
    sched: PollScheduler = Depends(get_scheduler),
    writer: StateWriter = Depends(get_writer),
):
    live = sched.live
    return {
        "app": settings.app_name,
        "mode": settings.mode,
        "poll_seconds": settings.poll_seconds,
        "running": live.running,
        "ticks": live.ticks,
        "last_tick_utc": live.last_tick_utc.isoformat() if live.last_tick_utc else None,
        "devices": {
            dev_id: {
                "last_poll_utc": st.last_poll_utc.isoformat() if st.last_poll_utc else None,
                "last_error": st.last_error,
                "cycles": st.cycles,
                "skipped": st.skipped,
                "inflight": sched.is_inflight(dev_id),
            }
            for dev_id, st in live.devices.items()
        },
        "emitted": dict(writer.emitted),
    }


@router.get("/devices")
async def list_devices(repo: SQLiteRepository = Depends(get_repo)):
    return {"devices": [_device_out(d) for d in await repo.list_devices()]}


@router.get("/devices/{device_id}")
async def get_device(device_id: str, repo: SQLiteRepository = Depends(get_repo)):
    return _device_out(await _require_device(device_id, repo))


@router.post("/devices/{device_id}/poll")
async def poll_device(
    device_id: str,
    repo: SQLiteRepository = Depends(get_repo),
    sched: PollScheduler = Depends(get_scheduler),
):
    device = await _require_device(device_id, repo)
    try:
        ran = await sched.poll_device(device)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True, "skipped": not ran, "device": _device_out(await _require_device(device_id, repo))}


@router.get("/states")
async def states(
    minutes: int = 60,
    limit: int = 5000,
    feature: Optional[str] = None,
    repo: SQLiteRepository = Depends(get_repo),
):
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await repo.query_states(start.isoformat(), end.isoformat(), limit=min(limit, 20000), feature_external_id=feature)
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [
            {"ts_utc": s.ts_utc.isoformat(), "feature": s.channel_external_id, "value": s.value}
            for s in rows
        ],
    }


# --- Simulation endpoints ---
@router.get("/sim/plugs")
async def sim_plugs(fleet: SimulatedPlugFleet = Depends(get_fleet)):
    return {"plugs": [p.status() for p in fleet.plugs()]}


@router.put("/sim/plugs/{address}")
async def sim_update_plug(address: str, req: SimPlugUpdate, fleet: SimulatedPlugFleet = Depends(get_fleet)):
    plug = fleet.get(address)
    if plug is None:
        raise HTTPException(status_code=404, detail=f"No simulated plug at {address}")

    updates = req.model_dump(exclude_none=True, exclude={"overrides"})
    for key, value in updates.items():
        setattr(plug, key, value)
    for channel, raw in (req.overrides or {}).items():
        if raw is None:
            plug.overrides.pop(channel, None)
        else:
            plug.overrides[channel] = raw
    return {"ok": True, "plug": plug.status()}
