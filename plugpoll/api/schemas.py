from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Literal, Dict

from ..domain.models import LoginStatus

ChannelName = Literal["binary", "power", "temperature", "energy"]


class SimPlugUpdate(BaseModel):
    on: Optional[bool] = None
    base_power_w: Optional[float] = Field(default=None, ge=0)
    temperature_c: Optional[float] = None
    energy_kwh: Optional[float] = Field(default=None, ge=0)
    login_status: Optional[LoginStatus] = None
    # Raw value forced per channel: "undefined", "ERROR", "raise" or any string; null clears
    overrides: Optional[Dict[ChannelName, Optional[str]]] = None
