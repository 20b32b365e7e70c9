from __future__ import annotations
from datetime import datetime
from typing import Callable, Optional, Protocol, runtime_checkable
from .models import Channel, ChangeEvent, ChannelKind, Device, EventType, FeatureCategory, LoginStatus


@runtime_checkable
class ChannelRegistry(Protocol):
    async def resolve(
        self, device: Device, category: FeatureCategory, kind: ChannelKind
    ) -> Optional[Channel]:
        ...

    async def resolve_parameter(self, device: Device, key: str) -> Optional[str]:
        ...


@runtime_checkable
class PlugSession(Protocol):
    async def __aenter__(self) -> "PlugSession":
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        ...

    async def login(self, username: str, pin: str, url: str) -> LoginStatus:
        ...

    async def fetch_state(self) -> str:
        ...

    async def fetch_temperature(self) -> str:
        ...

    async def fetch_power(self) -> str:
        ...

    async def fetch_energy(self) -> str:
        ...


SessionFactory = Callable[[], PlugSession]


@runtime_checkable
class EventSink(Protocol):
    async def emit(self, event_type: EventType, event: ChangeEvent) -> None:
        ...


@runtime_checkable
class StateStore(Protocol):
    async def save_state(self, channel_external_id: str, value: float, ts_utc: datetime) -> None:
        ...


@runtime_checkable
class DeviceSource(Protocol):
    async def list_devices(self) -> list[Device]:
        ...
