from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.config import settings
from ..core.timeutil import now_utc
from ..domain.errors import ConfigurationError
from ..domain.interfaces import DeviceSource
from ..domain.models import Device
from .poller import DevicePoller

logger = logging.getLogger(__name__)


@dataclass
class DevicePollStatus:
    last_poll_utc: Optional[datetime] = None
    last_error: Optional[str] = None
    cycles: int = 0
    skipped: int = 0


@dataclass
class LiveState:
    running: bool = False
    ticks: int = 0
    last_tick_utc: Optional[datetime] = None
    devices: dict[str, DevicePollStatus] = field(default_factory=dict)


class PollScheduler:
    """Invokes one polling cycle per registered device on every tick.

    A device whose previous cycle is still running is skipped for that tick,
    so no two cycles for the same device are ever in flight.
    """

    def __init__(
        self,
        poller: DevicePoller,
        devices: DeviceSource,
        poll_seconds: Optional[float] = None,
    ) -> None:
        self._poller = poller
        self._devices = devices
        self._poll_seconds = poll_seconds if poll_seconds is not None else settings.poll_seconds

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._inflight: set[str] = set()
        self.live = LiveState()

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="poll_loop")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    def is_inflight(self, device_id: str) -> bool:
        return device_id in self._inflight

    async def poll_device(self, device: Device) -> bool:
        """Run one cycle for ``device`` unless one is already running.

        Returns False when the cycle was skipped. ``ConfigurationError`` is
        recorded and re-raised.
        """
        status = self.live.devices.setdefault(device.id, DevicePollStatus())
        if device.id in self._inflight:
            status.skipped += 1
            logger.debug("Skipping %s, previous cycle still running", device.id)
            return False

        self._inflight.add(device.id)
        try:
            await self._poller.poll_once(device)
            status.last_error = None
        except ConfigurationError as e:
            status.last_error = str(e)
            raise
        finally:
            self._inflight.discard(device.id)
            status.last_poll_utc = now_utc()
            status.cycles += 1
        return True

    async def _poll_logged(self, device: Device) -> None:
        try:
            await self.poll_device(device)
        except ConfigurationError as e:
            logger.warning("Device %s (%s) is misconfigured: %s", device.id, device.name, e)
        except Exception as e:
            self.live.devices[device.id].last_error = str(e)
            logger.exception("Polling %s failed: %s", device.id, e)

    async def tick(self) -> None:
        devices = await self._devices.list_devices()
        self.live.ticks += 1
        self.live.last_tick_utc = now_utc()
        await asyncio.gather(*(self._poll_logged(d) for d in devices))

    async def _run(self) -> None:
        logger.info("Poll loop started (poll_seconds=%s)", self._poll_seconds)
        self.live.running = True

        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.exception("Poll loop error: %s", e)

            # sleep with cancellation awareness
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._poll_seconds)
            except asyncio.TimeoutError:
                pass

        self.live.running = False
        logger.info("Poll loop stopped")
