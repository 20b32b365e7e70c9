from __future__ import annotations
import logging
from collections import Counter

from ..core.timeutil import now_utc
from ..domain.interfaces import StateStore
from ..domain.models import ChangeEvent, EventType

logger = logging.getLogger(__name__)


class StateWriter:
    """Event sink that commits NEW_STATE events as the feature's last value."""

    def __init__(self, store: StateStore) -> None:
        self._store = store
        self.emitted: Counter[str] = Counter()

    async def emit(self, event_type: EventType, event: ChangeEvent) -> None:
        if event_type is not EventType.NEW_STATE:
            logger.debug("Ignoring %s event for %s", event_type, event.channel_external_id)
            return
        await self._store.save_state(event.channel_external_id, float(event.value), now_utc())
        self.emitted[event.channel_external_id] += 1
        logger.info("New state %s = %s", event.channel_external_id, event.value)
