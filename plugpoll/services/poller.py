from __future__ import annotations
import asyncio
import logging
from typing import Optional

from ..core.config import settings
from ..domain.errors import ConfigurationError, TransportError
from ..domain.external_id import PIN_CODE_PARAM, hnap_url, parse_external_id
from ..domain.interfaces import ChannelRegistry, EventSink, PlugSession, SessionFactory
from ..domain.models import (
    Channel,
    ChannelKind,
    ChangeEvent,
    Device,
    EventType,
    FeatureCategory,
    LoginStatus,
    PollContext,
)
from ..domain.readings import Rejected, has_changed, normalize

logger = logging.getLogger(__name__)


# Remote operation used to read each channel kind
FETCHERS = {
    ChannelKind.BINARY: "fetch_state",
    ChannelKind.TEMPERATURE: "fetch_temperature",
    ChannelKind.POWER: "fetch_power",
    ChannelKind.ENERGY: "fetch_energy",
}

UNITS = {
    ChannelKind.BINARY: "",
    ChannelKind.TEMPERATURE: "°",
    ChannelKind.POWER: " Watt",
    ChannelKind.ENERGY: " kWh",
}


class DevicePoller:
    """Runs one polling cycle against a DSP-W215 plug and emits changed channel values.

    A cycle resolves the plug's channels and pin code, opens a fresh session,
    logs in, then fetches and reconciles every registered channel in its own
    task. Only ``ConfigurationError`` leaves ``poll_once``; login failures,
    transport faults and invalid readings end up as log lines and no emission.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        session_factory: SessionFactory,
        sink: EventSink,
        username: Optional[str] = None,
        url_template: Optional[str] = None,
    ) -> None:
        self._registry = registry
        self._session_factory = session_factory
        self._sink = sink
        self._username = username if username is not None else settings.hnap_username
        self._url_template = url_template if url_template is not None else settings.hnap_url_template

    async def poll_once(self, device: Device) -> None:
        address = parse_external_id(device.external_id)

        *channels, pin = await asyncio.gather(
            *(self._registry.resolve(device, FeatureCategory.SWITCH, kind) for kind in FETCHERS),
            self._registry.resolve_parameter(device, PIN_CODE_PARAM),
        )
        if pin is None or not str(pin).strip():
            raise ConfigurationError(f"No {PIN_CODE_PARAM} parameter for device {device.id}")

        ctx = PollContext(
            device_id=device.id,
            address=address,
            url=hnap_url(address, self._url_template),
            username=self._username,
            pin=str(pin).strip(),
        )

        async with self._session_factory() as session:
            status = await session.login(ctx.username, ctx.pin, ctx.url)
            if status is not LoginStatus.SUCCESS:
                logger.debug(
                    "Polling w215 %s / %s, connection status = %s",
                    ctx.username, ctx.address, status.value,
                )
                return

            logger.debug("w215 connection status : %s (IP address : %s)", status.value, ctx.address)
            await asyncio.gather(
                *(self._reconcile(ctx, session, ch) for ch in channels if ch is not None)
            )

    async def _reconcile(self, ctx: PollContext, session: PlugSession, channel: Channel) -> None:
        kind = channel.kind
        unit = UNITS[kind]
        try:
            try:
                raw = await getattr(session, FETCHERS[kind])()
            except TransportError as e:
                logger.debug("w215 %s %s fetch failed: %s", ctx.address, kind.value, e)
                return

            outcome = normalize(kind, raw)
            if isinstance(outcome, Rejected):
                logger.debug("w215 %s no DB update, invalid reading (%s)", kind.value, outcome.reason)
                return

            value = outcome.value
            if not has_changed(kind, value, channel.last_value):
                logger.debug("w215 %s no DB update = %s%s", kind.value, _fmt(value), unit)
                return

            logger.debug("w215 new %s = %s%s (was %s)", kind.value, _fmt(value), unit, channel.last_value)
            await self._sink.emit(
                EventType.NEW_STATE,
                ChangeEvent(channel_external_id=channel.external_id, value=value),
            )
        except Exception:
            logger.exception("w215 %s %s pipeline failed", ctx.address, kind.value)


def _fmt(value: object) -> str:
    return getattr(value, "name", None) or str(value)
