from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from .models import BinaryState, ChannelKind, ChannelValue

# Raw markers the plug returns instead of a measurement
SENTINELS = frozenset({"undefined", "ERROR"})

_WATT = Decimal("1")
_KWH = Decimal("0.001")

# Largest decimal exponent accepted from a plug; a socket never reports 1e16 W or kWh
MAX_EXPONENT = 15


@dataclass(frozen=True)
class Valid:
    value: ChannelValue


@dataclass(frozen=True)
class Rejected:
    reason: str


ReadingOutcome = Union[Valid, Rejected]


def _to_decimal(raw: object) -> Optional[Decimal]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        d = Decimal(str(raw).strip())
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def _in_range(d: Decimal) -> bool:
    return d.is_zero() or d.adjusted() <= MAX_EXPONENT


def _normalize_number(kind: ChannelKind, d: Decimal) -> ChannelValue:
    if kind is ChannelKind.TEMPERATURE:
        return int(d)  # truncates toward zero
    if kind is ChannelKind.POWER:
        return int(d.quantize(_WATT, rounding=ROUND_HALF_UP))
    if kind is ChannelKind.ENERGY:
        return float(d.quantize(_KWH, rounding=ROUND_HALF_UP))
    raise ValueError(f"Not a numeric channel kind: {kind}")


def normalize(kind: ChannelKind, raw: Optional[str]) -> ReadingOutcome:
    """Validate a raw reading and convert it to the value compared and emitted.

    Sentinels are rejected before any per-kind mapping, so a transient error is
    never reported as a definite OFF state.
    """
    if raw is None:
        return Rejected("no value")
    text = str(raw).strip()
    if text in SENTINELS:
        return Rejected(f"sentinel {text!r}")

    if kind is ChannelKind.BINARY:
        return Valid(BinaryState.ON if text == "true" else BinaryState.OFF)

    d = _to_decimal(text)
    if d is None:
        return Rejected(f"unparseable {text!r}")
    if not _in_range(d):
        return Rejected(f"out of range {text!r}")
    try:
        return Valid(_normalize_number(kind, d))
    except InvalidOperation:
        return Rejected(f"out of range {text!r}")


def normalize_last_value(kind: ChannelKind, last_value: object) -> Optional[ChannelValue]:
    """Bring a stored value to the same representation as a normalized reading.

    Returns None when there is nothing comparable, which always counts as a change.
    """
    if isinstance(last_value, BinaryState):
        return last_value if kind is ChannelKind.BINARY else None

    d = _to_decimal(last_value)
    if d is None or not _in_range(d):
        return None

    if kind is ChannelKind.BINARY:
        if d == 1:
            return BinaryState.ON
        if d == 0:
            return BinaryState.OFF
        return None
    try:
        return _normalize_number(kind, d)
    except InvalidOperation:
        return None


def has_changed(kind: ChannelKind, value: ChannelValue, last_value: object) -> bool:
    return normalize_last_value(kind, last_value) != value
