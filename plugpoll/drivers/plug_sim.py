from __future__ import annotations
import logging
import random
from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..core.timeutil import now_utc
from ..domain.errors import TransportError
from ..domain.external_id import parse_external_id
from ..domain.models import ChannelKind, LoginStatus

logger = logging.getLogger(__name__)


@dataclass
class SimulatedPlug:
    address: str
    pin: str = "123456"
    on: bool = True
    base_power_w: float = 42.0
    power_noise_w: float = 1.5
    temperature_c: float = 24.0
    energy_kwh: float = 1.234
    login_status: LoginStatus = LoginStatus.SUCCESS

    # Per-channel raw override, e.g. {"temperature": "ERROR"}; "raise" simulates a transport fault
    overrides: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._last_tick = now_utc()

    def _tick(self) -> None:
        # Energy accumulates from the current load between reads
        now = now_utc()
        hours = (now - self._last_tick).total_seconds() / 3600.0
        self._last_tick = now
        if self.on:
            self.energy_kwh += self.base_power_w * hours / 1000.0

    def power_w(self) -> float:
        if not self.on:
            return 0.0
        return max(0.0, self.base_power_w + random.uniform(-self.power_noise_w, self.power_noise_w))

    def read(self, kind: ChannelKind) -> str:
        override = self.overrides.get(kind.value)
        if override == "raise":
            raise TransportError(f"Simulated {kind.value} transport failure")
        if override is not None:
            return override

        self._tick()
        if kind is ChannelKind.BINARY:
            return "true" if self.on else "false"
        if kind is ChannelKind.POWER:
            return f"{self.power_w():.2f}"
        if kind is ChannelKind.TEMPERATURE:
            return f"{self.temperature_c:.1f}"
        return f"{self.energy_kwh:.4f}"

    def status(self) -> dict:
        return {
            "address": self.address,
            "on": self.on,
            "base_power_w": self.base_power_w,
            "temperature_c": self.temperature_c,
            "energy_kwh": round(self.energy_kwh, 4),
            "login_status": self.login_status.value,
            "overrides": dict(self.overrides),
        }


class SimulatedPlugSession:
    """Stand-in for an HNAP session, talking to an in-process SimulatedPlug."""

    def __init__(self, fleet: SimulatedPlugFleet) -> None:
        self._fleet = fleet
        self._plug: Optional[SimulatedPlug] = None
        self.closed = False

    async def __aenter__(self) -> SimulatedPlugSession:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self._plug = None
        self.closed = True

    async def login(self, username: str, pin: str, url: str) -> LoginStatus:
        plug = self._fleet.find_by_url(url)
        if plug is None:
            return LoginStatus.UNDEFINED
        if plug.login_status is not LoginStatus.SUCCESS:
            return plug.login_status
        if pin != plug.pin:
            return LoginStatus.FAILED
        self._plug = plug
        return LoginStatus.SUCCESS

    def _read(self, kind: ChannelKind) -> str:
        if self._plug is None:
            raise TransportError("Simulated session is not authenticated")
        return self._plug.read(kind)

    async def fetch_state(self) -> str:
        return self._read(ChannelKind.BINARY)

    async def fetch_temperature(self) -> str:
        return self._read(ChannelKind.TEMPERATURE)

    async def fetch_power(self) -> str:
        return self._read(ChannelKind.POWER)

    async def fetch_energy(self) -> str:
        return self._read(ChannelKind.ENERGY)


class SimulatedPlugFleet:
    def __init__(self) -> None:
        self._plugs: dict[str, SimulatedPlug] = {}

    def add(self, plug: SimulatedPlug) -> SimulatedPlug:
        self._plugs[plug.address] = plug
        logger.info("Simulated plug registered at %s", plug.address)
        return plug

    def add_for_external_id(self, external_id: str, pin: str) -> SimulatedPlug:
        address = parse_external_id(external_id)
        return self._plugs.get(address) or self.add(SimulatedPlug(address=address, pin=pin))

    def get(self, address: str) -> Optional[SimulatedPlug]:
        return self._plugs.get(address)

    def plugs(self) -> list[SimulatedPlug]:
        return list(self._plugs.values())

    def find_by_url(self, url: str) -> Optional[SimulatedPlug]:
        try:
            host = httpx.URL(url).host
        except httpx.InvalidURL:
            return None
        return self._plugs.get(host)

    def session(self) -> SimulatedPlugSession:
        return SimulatedPlugSession(self)
