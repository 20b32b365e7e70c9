from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional
from ..domain.models import Channel, ChannelKind, Device, FeatureCategory, StateRecord


class InMemoryRepository:
    """Dict-backed twin of SQLiteRepository for one-off runs and tests."""

    def __init__(self) -> None:
        self._devices: Dict[str, Device] = {}
        self._features: Dict[str, tuple[str, Channel]] = {}
        self._states: List[StateRecord] = []

    async def init(self) -> None:
        return None

    async def add_device(self, device: Device) -> None:
        if device.id in self._devices:
            raise ValueError(f"Device already registered: {device.id}")
        self._devices[device.id] = replace(device, channels=(), params=dict(device.params))
        for ch in device.channels:
            self._features[ch.external_id] = (device.id, ch)

    def _channels(self, device_id: str) -> tuple[Channel, ...]:
        return tuple(
            sorted(
                (ch for dev_id, ch in self._features.values() if dev_id == device_id),
                key=lambda ch: ch.external_id,
            )
        )

    async def get_device(self, device_id: str) -> Optional[Device]:
        device = self._devices.get(device_id)
        if device is None:
            return None
        return replace(device, channels=self._channels(device_id))

    async def get_device_by_external_id(self, external_id: str) -> Optional[Device]:
        for device in self._devices.values():
            if device.external_id == external_id:
                return await self.get_device(device.id)
        return None

    async def list_devices(self) -> List[Device]:
        devices = [await self.get_device(dev_id) for dev_id in self._devices]
        return sorted(devices, key=lambda d: d.name)

    async def resolve(
        self, device: Device, category: FeatureCategory, kind: ChannelKind
    ) -> Optional[Channel]:
        for ch in self._channels(device.id):
            if ch.category is category and ch.kind is kind:
                return ch
        return None

    async def resolve_parameter(self, device: Device, key: str) -> Optional[str]:
        stored = self._devices.get(device.id)
        return stored.params.get(key) if stored else None

    async def save_state(self, channel_external_id: str, value: float, ts_utc: datetime) -> None:
        if channel_external_id not in self._features:
            raise KeyError(f"Unknown feature: {channel_external_id}")
        device_id, ch = self._features[channel_external_id]
        self._features[channel_external_id] = (device_id, replace(ch, last_value=float(value)))
        self._states.append(StateRecord(ts_utc=ts_utc, channel_external_id=channel_external_id, value=float(value)))

    async def query_states(
        self, start_ts: str, end_ts: str, limit: int, feature_external_id: Optional[str] = None
    ) -> List[StateRecord]:
        start, end = datetime.fromisoformat(start_ts), datetime.fromisoformat(end_ts)
        rows = [
            s for s in self._states
            if start <= s.ts_utc <= end
            and (feature_external_id is None or s.channel_external_id == feature_external_id)
        ]
        return rows[-limit:] if limit > 0 else []
