"""
Shared pytest fixtures for plugpoll tests.

Provides:
- A scripted plug session double
- Device / channel factories
- In-memory registry pre-loaded with a four-channel plug
"""
import asyncio
from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from plugpoll.domain.external_id import PIN_CODE_PARAM
from plugpoll.domain.models import Channel, ChannelKind, Device, LoginStatus
from plugpoll.storage.memory_repo import InMemoryRepository


EXTERNAL_ID = "w215:192.168.0.50"


class FakeSession:
    """Plug session double with scripted login status and raw readings.

    ``readings`` maps a ChannelKind to a raw string or an exception instance
    to raise. ``delays`` maps a ChannelKind to seconds to sleep before answering.
    """

    def __init__(
        self,
        login_status: LoginStatus = LoginStatus.SUCCESS,
        readings: Optional[Dict[ChannelKind, Union[str, Exception]]] = None,
        delays: Optional[Dict[ChannelKind, float]] = None,
    ) -> None:
        self.login_status = login_status
        self.readings = readings or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self.login_args = None
        self.entered = False
        self.closed = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    async def login(self, username, pin, url):
        self.calls.append("login")
        self.login_args = (username, pin, url)
        return self.login_status

    async def _read(self, name: str, kind: ChannelKind) -> str:
        self.calls.append(name)
        if kind in self.delays:
            await asyncio.sleep(self.delays[kind])
        value = self.readings.get(kind, "undefined")
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_state(self):
        return await self._read("fetch_state", ChannelKind.BINARY)

    async def fetch_temperature(self):
        return await self._read("fetch_temperature", ChannelKind.TEMPERATURE)

    async def fetch_power(self):
        return await self._read("fetch_power", ChannelKind.POWER)

    async def fetch_energy(self):
        return await self._read("fetch_energy", ChannelKind.ENERGY)

    @property
    def fetches(self) -> List[str]:
        return [c for c in self.calls if c.startswith("fetch_")]


def make_channel(kind: ChannelKind, last_value=None, external_id: str = EXTERNAL_ID) -> Channel:
    return Channel(external_id=f"{external_id}:{kind.value}", kind=kind, name=kind.value.title(), last_value=last_value)


def make_device(
    last_values: Optional[Dict[ChannelKind, object]] = None,
    kinds=tuple(ChannelKind),
    pin: Optional[str] = "123456",
    external_id: str = EXTERNAL_ID,
    device_id: str = "plug-1",
) -> Device:
    last_values = last_values or {}
    return Device(
        id=device_id,
        name="Test plug",
        external_id=external_id,
        channels=tuple(make_channel(k, last_values.get(k), external_id) for k in kinds),
        params={PIN_CODE_PARAM: pin} if pin is not None else {},
    )


@pytest.fixture
def sink():
    mock = AsyncMock()
    mock.emit = AsyncMock()
    return mock


@pytest_asyncio.fixture
async def memory_repo():
    repo = InMemoryRepository()
    await repo.init()
    return repo


@pytest_asyncio.fixture
async def registered_device(memory_repo):
    device = make_device(
        {
            ChannelKind.BINARY: 0.0,
            ChannelKind.POWER: 42.0,
            ChannelKind.TEMPERATURE: 24.0,
            ChannelKind.ENERGY: 1.234,
        }
    )
    await memory_repo.add_device(device)
    return device
