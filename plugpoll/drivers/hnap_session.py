from __future__ import annotations

import hashlib
import hmac
import logging
import time
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape
from typing import Optional

import httpx

from ..domain.errors import TransportError
from ..domain.models import LoginStatus

logger = logging.getLogger(__name__)

HNAP_NS = "http://purenetworks.com/HNAP1/"

# Value the plug's HNAP client reports for a missing response element
MISSING_VALUE = "ERROR"

# Module ids on the DSP-W215
SOCKET_MODULE = 1
METERING_MODULE = 2
THERMAL_MODULE = 3


def _hmac_md5(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.md5).hexdigest().upper()


def _envelope(method: str, parameters: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
        'xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        f'<soap:Body><{method} xmlns="{HNAP_NS}">{parameters}</{method}></soap:Body>'
        "</soap:Envelope>"
    )


def _module(module_id: int) -> str:
    return f"<ModuleID>{module_id}</ModuleID>"


def read_element(body: str, element: str) -> Optional[str]:
    """Return the text of the first ``element`` in a SOAP response, namespace-agnostic."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as err:
        raise TransportError(f"Malformed HNAP response: {err}") from err
    for node in root.iter():
        if node.tag.rsplit("}", 1)[-1] == element:
            return node.text
    return None


class HnapSession:
    """Authenticated HNAP session against one DSP-W215 plug.

    One instance lives for one polling cycle; leaving the context closes the
    underlying HTTP client and forgets the keys.
    """

    def __init__(self, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._url: Optional[str] = None
        self._private_key: Optional[str] = None
        self._cookie: Optional[str] = None

    async def __aenter__(self) -> HnapSession:
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._private_key = None
        self._cookie = None

    @property
    def authenticated(self) -> bool:
        return self._private_key is not None

    async def _post(self, method: str, body: str, authenticated: bool) -> str:
        if self._client is None or self._url is None:
            raise TransportError("HNAP session is not open")
        soap_action = f'"{HNAP_NS}{method}"'
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": soap_action,
        }
        if authenticated:
            if self._private_key is None:
                raise TransportError("HNAP session is not authenticated")
            timestamp = str(round(time.time()))
            headers["HNAP_AUTH"] = f"{_hmac_md5(self._private_key, timestamp + soap_action)} {timestamp}"
            headers["Cookie"] = f"uid={self._cookie}"
        try:
            resp = await self._client.post(self._url, content=body, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as err:
            raise TransportError(f"HNAP {method} failed: {err}") from err
        return resp.text

    async def login(self, username: str, pin: str, url: str) -> LoginStatus:
        self._url = url
        self._private_key = None
        try:
            challenge_body = await self._post(
                "Login",
                _envelope(
                    "Login",
                    f"<Action>request</Action><Username>{escape(username)}</Username>"
                    "<LoginPassword></LoginPassword><Captcha></Captcha>",
                ),
                authenticated=False,
            )
            challenge = read_element(challenge_body, "Challenge")
            cookie = read_element(challenge_body, "Cookie")
            public_key = read_element(challenge_body, "PublicKey")
            if not (challenge and cookie and public_key):
                logger.debug("HNAP login request to %s returned no challenge", url)
                # Without keys nothing can be fetched, whatever the first phase claims
                if LoginStatus.from_raw(read_element(challenge_body, "LoginResult")) is LoginStatus.FAILED:
                    return LoginStatus.FAILED
                return LoginStatus.UNDEFINED

            self._cookie = cookie
            self._private_key = _hmac_md5(public_key + pin, challenge)
            login_body = await self._post(
                "Login",
                _envelope(
                    "Login",
                    f"<Action>login</Action><Username>{escape(username)}</Username>"
                    f"<LoginPassword>{_hmac_md5(self._private_key, challenge)}</LoginPassword>"
                    "<Captcha></Captcha>",
                ),
                authenticated=True,
            )
            status = LoginStatus.from_raw(read_element(login_body, "LoginResult"))
        except TransportError as err:
            logger.debug("HNAP login to %s got no answer: %s", url, err)
            self._private_key = None
            return LoginStatus.UNDEFINED

        if status is not LoginStatus.SUCCESS:
            self._private_key = None
        return status

    async def _action(self, method: str, element: str, parameters: str) -> str:
        body = await self._post(method, _envelope(method, parameters), authenticated=True)
        value = read_element(body, element)
        return value if value else MISSING_VALUE

    async def fetch_state(self) -> str:
        return await self._action("GetSocketSettings", "OPStatus", _module(SOCKET_MODULE))

    async def fetch_temperature(self) -> str:
        return await self._action("GetCurrentTemperature", "CurrentTemperature", _module(THERMAL_MODULE))

    async def fetch_power(self) -> str:
        return await self._action("GetCurrentPowerConsumption", "CurrentConsumption", _module(METERING_MODULE))

    async def fetch_energy(self) -> str:
        return await self._action("GetPMWarningThreshold", "TotalConsumption", _module(METERING_MODULE))
