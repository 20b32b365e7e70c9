from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import plugpoll.api.routes as routes_module

from .domain.external_id import PIN_CODE_PARAM, parse_external_id
from .domain.interfaces import SessionFactory
from .domain.models import Channel, ChannelKind, Device
from .drivers.hnap_session import HnapSession
from .drivers.plug_sim import SimulatedPlugFleet
from .services.poller import DevicePoller
from .services.scheduler import PollScheduler
from .services.state_writer import StateWriter
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)


fleet: SimulatedPlugFleet | None = None


def build_session_factory() -> SessionFactory:
    global fleet

    if settings.mode.lower() == "hnap":
        return lambda: HnapSession(timeout=settings.hnap_timeout_seconds)

    # default to sim
    fleet = SimulatedPlugFleet()
    return fleet.session


def seed_device() -> Device:
    address = parse_external_id(settings.seed_external_id)
    device_id = address.replace(".", "-").replace(":", "-")
    return Device(
        id=f"w215-{device_id}",
        name=settings.seed_name,
        external_id=settings.seed_external_id,
        channels=tuple(
            Channel(external_id=f"{settings.seed_external_id}:{kind.value}", kind=kind, name=kind.value.title())
            for kind in ChannelKind
        ),
        params={PIN_CODE_PARAM: settings.seed_pin},
    )


# --- Singletons ---
session_factory = build_session_factory()
repo = SQLiteRepository(settings.sqlite_path)
writer = StateWriter(repo)
poller = DevicePoller(registry=repo, session_factory=session_factory, sink=writer)
scheduler: PollScheduler | None = None


def get_scheduler() -> PollScheduler:
    assert scheduler is not None
    return scheduler


def get_repo() -> SQLiteRepository:
    return repo


def get_writer() -> StateWriter:
    return writer


def get_fleet() -> SimulatedPlugFleet:
    if fleet is None:
        raise RuntimeError("Simulated plugs not available (mode is not 'sim').")
    return fleet


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (mode=%s)", settings.app_name, settings.mode)

    await repo.init()

    if settings.seed_external_id:
        if await repo.get_device_by_external_id(settings.seed_external_id) is None:
            device = seed_device()
            await repo.add_device(device)
            logger.info("Registered %s (%s)", device.name, device.external_id)
        if fleet is not None:
            fleet.add_for_external_id(settings.seed_external_id, settings.seed_pin)

    global scheduler
    scheduler = PollScheduler(poller=poller, devices=repo)
    await scheduler.start()

    try:
        yield
    finally:
        if scheduler:
            await scheduler.stop()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_scheduler] = get_scheduler
app.dependency_overrides[routes_module.get_repo] = get_repo
app.dependency_overrides[routes_module.get_writer] = get_writer
app.dependency_overrides[routes_module.get_fleet] = get_fleet

app.include_router(api_router, prefix="/api")
