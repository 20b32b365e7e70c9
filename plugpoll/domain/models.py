from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Union


class FeatureCategory(str, Enum):
    SWITCH = "switch"


class ChannelKind(str, Enum):
    BINARY = "binary"
    POWER = "power"
    TEMPERATURE = "temperature"
    ENERGY = "energy"


class BinaryState(IntEnum):
    OFF = 0
    ON = 1


class LoginStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    UNDEFINED = "undefined"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "LoginStatus":
        if raw == cls.SUCCESS.value:
            return cls.SUCCESS
        if raw == cls.FAILED.value:
            return cls.FAILED
        return cls.UNDEFINED


class EventType(str, Enum):
    NEW_STATE = "device.new-state"


ChannelValue = Union[BinaryState, int, float]


@dataclass(frozen=True)
class Channel:
    external_id: str
    kind: ChannelKind
    category: FeatureCategory = FeatureCategory.SWITCH
    name: str = ""
    last_value: Optional[float] = None


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    external_id: str
    channels: tuple[Channel, ...] = ()
    params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PollContext:
    """Everything one polling cycle needs to reach the plug."""

    device_id: str
    address: str
    url: str
    username: str
    pin: str = field(repr=False)


@dataclass(frozen=True)
class ChangeEvent:
    channel_external_id: str
    value: ChannelValue


@dataclass(frozen=True)
class StateRecord:
    ts_utc: datetime
    channel_external_id: str
    value: float


