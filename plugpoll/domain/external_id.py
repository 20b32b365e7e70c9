from __future__ import annotations
import ipaddress
import re

from .errors import ConfigurationError

EXTERNAL_ID_PREFIX = "w215"
PIN_CODE_PARAM = "W215_PIN_CODE"

_HOSTNAME_RE = re.compile(r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$")


def parse_external_id(external_id: str | None) -> str:
    """Return the plug address encoded in an external id like ``w215:192.168.0.50``."""
    prefix, sep, address = (external_id or "").partition(":")
    address = address.strip()
    if prefix != EXTERNAL_ID_PREFIX or not sep or not address:
        raise ConfigurationError(f"Invalid external id: {external_id!r}")

    try:
        ipaddress.ip_address(address)
        return address
    except ValueError:
        pass

    if not _HOSTNAME_RE.match(address):
        raise ConfigurationError(f"Invalid plug address in external id: {external_id!r}")
    return address


def build_external_id(address: str) -> str:
    return f"{EXTERNAL_ID_PREFIX}:{address}"


def hnap_url(address: str, template: str = "http://{address}/HNAP1") -> str:
    try:
        if ipaddress.ip_address(address).version == 6:
            address = f"[{address}]"
    except ValueError:
        pass
    return template.format(address=address)
