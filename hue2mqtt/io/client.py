"""
Hue hub HTTP transport.

This module implements the request/response side of the hub's REST API using
aiohttp. It contains the HueClient class for sending requests and decoding
responses, and nupnp_search() for finding hubs on the local network.

Terms:
- Request = An HTTP request sent by the Client to the hub
- Response = The decoded JSON answer to a Request
- Client = A class which sends Requests and receives Responses

Example usage:
async def main():
    async with HueClient("192.0.2.10") as client:
        resp = await client.send_request(Request("GET", "/api/none/config"))
        print(resp.status, resp.data)

asyncio.run(main())
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Self

import aiohttp
from colorama import Fore, Style

from ..exceptions import HueConnectionError, HueDiscoveryError


# Constants
class ClientConst:
    """Constants for the HueClient"""
    DEFAULT_TIMEOUT = 10.0
    MIN_TIMEOUT = 0.5
    MAX_TIMEOUT = 60.0
    DISCOVERY_URL = "https://discovery.meethue.com/"


@dataclass
class Request:
    """Represents a request to be sent to the hub"""
    method: str
    path: str
    body: Optional[dict] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        self.method = self.method.upper()
        if not self.path.startswith("/"):
            self.path = "/" + self.path


@dataclass
class Response:
    status: int
    data: Any = None
    request: Optional[Request] = None
    timestamp: float = field(default_factory=time.time)


class HueClient:
    """
    Sends JSON requests to a single hub address.

    Transport failures, timeouts, non-2xx answers and bodies which are not
    JSON are all raised as HueConnectionError. Error objects inside a valid
    JSON answer are left for the API layer to interpret.
    """

    def __init__(self,
                 host: str,
                 session: Optional[aiohttp.ClientSession] = None,
                 logger: Optional[logging.Logger] = None,
                 print_traffic: bool = False,
                 timeout: Optional[float] = None,
                 scheme: str = "http"):
        self.host = host
        self.scheme = scheme
        self.logger = logger or logging.getLogger(__name__)
        self.print_traffic = print_traffic
        if timeout is None: timeout = ClientConst.DEFAULT_TIMEOUT
        self.timeout = max(ClientConst.MIN_TIMEOUT, min(timeout, ClientConst.MAX_TIMEOUT))
        self._session = session
        self._owns_session = session is None

    @classmethod
    async def create(cls, host: str, logger: Optional[logging.Logger] = None, print_traffic: bool = False) -> Self:
        self = cls(host, logger=logger, print_traffic=print_traffic)
        self._get_session()
        self.logger.info(f"Using hub at {host}")
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def send_request(self, req: Request) -> Response:
        session = self._get_session()
        url = self.base_url + req.path
        req.timestamp = time.time()
        try:
            async with session.request(req.method, url, json=req.body) as resp:
                text = await resp.text()
                status = resp.status
        except asyncio.TimeoutError as e:
            raise HueConnectionError(f"{req.method} {req.path}: no response from {self.host} after {self.timeout:.0f}s") from e
        except aiohttp.ClientError as e:
            raise HueConnectionError(f"{req.method} {req.path}: {e}") from e

        response = Response(status=status, request=req)

        if self.print_traffic:
            rtt_ms = (response.timestamp - req.timestamp) * 1000
            print(Fore.MAGENTA + f"REQUEST: {req.method} {req.path} {json.dumps(req.body) if req.body is not None else ''}  "
                + Fore.WHITE + Style.DIM + f"RTT: {rtt_ms:.0f}ms".ljust(10)
                + Style.BRIGHT + Fore.CYAN + f"  RESPONSE: {status} {text}"
                + Style.RESET_ALL)

        if not 200 <= status < 300:
            raise HueConnectionError(f"{req.method} {req.path}: unexpected HTTP status {status}")

        try:
            response.data = json.loads(text) if text else None
        except ValueError as e:
            raise HueConnectionError(f"{req.method} {req.path}: response is not JSON") from e

        return response

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


async def nupnp_search(session: Optional[aiohttp.ClientSession] = None,
                       url: str = ClientConst.DISCOVERY_URL,
                       logger: Optional[logging.Logger] = None) -> list[str]:
    """
    Ask the vendor's discovery portal for hubs on the caller's network.

    Returns the internal addresses of every hub found, in the order the
    portal lists them. Raises HueDiscoveryError if the portal cannot be
    queried.
    """
    logger = logger or logging.getLogger(__name__)
    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=ClientConst.DEFAULT_TIMEOUT))
    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                raise HueDiscoveryError(f"Discovery portal answered with HTTP status {resp.status}")
            data = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise HueDiscoveryError(f"Discovery failed: {e}") from e
    finally:
        if owns_session:
            await session.close()

    if not isinstance(data, list):
        raise HueDiscoveryError("Discovery portal returned an unexpected answer")
    addresses = [entry["internalipaddress"] for entry in data if isinstance(entry, dict) and entry.get("internalipaddress")]
    logger.debug(f"Discovery found {len(addresses)} hub(s): {addresses}")
    return addresses
