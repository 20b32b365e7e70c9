#!/usr/bin/env python3
"""
Standalone DSP-W215 poller.

Logs in to one plug over HNAP, reads on/off state, power, temperature and
total energy, and prints every value that changed since the previous cycle.
Nothing is persisted; the last known values live in memory for the run.

Usage:
    python plug_poll.py 192.168.0.50 --pin 123456            # one cycle
    python plug_poll.py 192.168.0.50 --pin 123456 --count 10 --interval 30

Dependencies:
    pip install httpx pydantic-settings
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from plugpoll.domain.errors import ConfigurationError
from plugpoll.domain.external_id import PIN_CODE_PARAM, build_external_id
from plugpoll.domain.models import Channel, ChangeEvent, ChannelKind, Device, EventType
from plugpoll.drivers.hnap_session import HnapSession
from plugpoll.services.poller import DevicePoller
from plugpoll.services.state_writer import StateWriter
from plugpoll.storage.memory_repo import InMemoryRepository


# ---------------------------------------------------------------------------
# Printing sink
# ---------------------------------------------------------------------------

class PrintingWriter(StateWriter):
    """StateWriter that also prints each change to stdout."""

    async def emit(self, event_type: EventType, event: ChangeEvent) -> None:
        await super().emit(event_type, event)
        value = getattr(event.value, "name", event.value)
        print(f"{event.channel_external_id} = {value}", flush=True)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

async def run(args: argparse.Namespace) -> int:
    log = logging.getLogger("plug_poll")
    external_id = build_external_id(args.address)
    device = Device(
        id="cli",
        name=args.address,
        external_id=external_id,
        channels=tuple(
            Channel(external_id=f"{external_id}:{kind.value}", kind=kind)
            for kind in ChannelKind
        ),
        params={PIN_CODE_PARAM: args.pin},
    )

    repo = InMemoryRepository()
    await repo.add_device(device)
    poller = DevicePoller(
        registry=repo,
        session_factory=lambda: HnapSession(timeout=args.timeout),
        sink=PrintingWriter(repo),
        username=args.username,
    )

    log.info("Polling %s as %s (%d cycle(s), every %.0fs)", args.address, args.username, args.count, args.interval)
    for cycle in range(args.count):
        if cycle:
            await asyncio.sleep(args.interval)
        try:
            await poller.poll_once(device)
        except ConfigurationError as e:
            log.error("Cannot poll %s: %s", args.address, e)
            return 2
    return 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    p = argparse.ArgumentParser(description="Poll a D-Link DSP-W215 smart plug")

    p.add_argument("address", help="Plug IP address or hostname")
    p.add_argument("--pin", required=True, help="PIN code printed on the plug")
    p.add_argument("--username", default="admin")
    p.add_argument("--timeout", type=float, default=5.0, help="Per-request timeout in seconds")
    p.add_argument("--count", type=int, default=1, help="Number of polling cycles")
    p.add_argument("--interval", type=float, default=30.0, help="Seconds between cycles")

    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        logging.getLogger("plug_poll").info("Shutting down")


if __name__ == "__main__":
    main()
