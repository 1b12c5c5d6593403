"""Rate-limited, certificate-pinned client for the Hue CLIP v2 REST API.

The bridge ships a certificate signed by the vendor's private root and whose
subject alternative names do not cover the address we talk to.  Rather than
disabling verification we pin the vendor root (``HUE_BRIDGE_CACERT_PEM_PATH``)
and replace the hostname check with :func:`check_bridge_identity`: standard
hostname matching first, and on mismatch the certificate is accepted only when
its common name equals the configured bridge id.  Any other mismatch fails the
connection with :class:`~lightbridge.errors.CertificateMismatch`.

Requests are issued with ``requests`` on the default executor so the event
loop never blocks, and every call first takes a slot from a shared
:class:`RateLimiter`.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.util.ssl_match_hostname import CertificateError, match_hostname

from .config import BridgeConfig
from .errors import BridgeUnreachable, CertificateMismatch
from .models import Light, VendorBody

LOGGER = logging.getLogger(__name__)

GROUP_KINDS = ("zone", "room")


def _common_name(cert: Dict[str, Any]) -> Optional[str]:
    for rdn in cert.get("subject", ()):
        for key, value in rdn:
            if key == "commonName":
                return value
    return None


def check_bridge_identity(hostname: str, cert: Optional[Dict[str, Any]], bridge_id: str) -> None:
    """Verify a peer certificate for the bridge at ``hostname``.

    Raises :class:`CertificateMismatch` unless the certificate matches the
    hostname, or its subject common name is the lower-cased bridge id.
    """

    if not cert:
        raise CertificateMismatch(f"Bridge at {hostname} presented no certificate")
    try:
        match_hostname(cert, hostname)
        return
    except CertificateError as exc:
        mismatch = exc

    common_name = _common_name(cert)
    if common_name is not None and common_name == bridge_id.lower():
        return
    raise CertificateMismatch(f"Unexpected common name: {common_name}") from mismatch


class PinnedHTTPSConnection(HTTPSConnection):
    """HTTPS connection that runs :func:`check_bridge_identity` after the handshake."""

    expected_common_name: Optional[str] = None

    def connect(self) -> None:
        super().connect()
        if self.expected_common_name is None:
            return
        try:
            check_bridge_identity(self.host, self.sock.getpeercert(), self.expected_common_name)
        except CertificateMismatch:
            self.close()
            raise


class PinnedHTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = PinnedHTTPSConnection
    expected_common_name: Optional[str] = None

    def _new_conn(self):
        conn = super()._new_conn()
        conn.expected_common_name = self.expected_common_name
        return conn


class PinnedBridgeAdapter(HTTPAdapter):
    """Transport adapter that swaps urllib3's hostname check for the bridge id check."""

    def __init__(self, bridge_id: str, **kwargs: Any) -> None:
        self._bridge_id = bridge_id.lower()
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        # CA verification stays on; only the hostname match moves to connect().
        pool_kwargs["assert_hostname"] = False
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)
        bridge_id = self._bridge_id

        class BridgeHTTPSConnectionPool(PinnedHTTPSConnectionPool):
            expected_common_name = bridge_id

        self.poolmanager.pool_classes_by_scheme = {
            "http": HTTPConnectionPool,
            "https": BridgeHTTPSConnectionPool,
        }


class RateLimiter:
    """Global request pacer: one slot per ``interval`` seconds, granted FIFO."""

    def __init__(self, interval: float) -> None:
        self._interval = max(interval, 0.0)
        self._lock: Optional[asyncio.Lock] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._next_slot = 0.0

    @property
    def interval(self) -> float:
        return self._interval

    async def acquire(self) -> None:
        # asyncio locks are bound to one loop; make a fresh one for each loop that uses the limiter.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not loop:
            self._lock = asyncio.Lock()
            self._loop = loop
        async with self._lock:
            delay = self._next_slot - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            self._next_slot = max(time.monotonic(), self._next_slot) + self._interval


class BridgeClient:
    """Authenticated client for the bridge resources used by the light bridge."""

    def __init__(
        self,
        config: BridgeConfig,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._config = config
        self._session = session or self._build_session(config)
        # Passed on every request; a session-level verify loses to REQUESTS_CA_BUNDLE.
        self._verify = config.ca_cert_path or True
        self._limiter = limiter or RateLimiter(config.rate_limit_ms / 1000.0)

    @staticmethod
    def _build_session(config: BridgeConfig) -> requests.Session:
        session = requests.Session()
        if config.ca_cert_path:
            session.verify = config.ca_cert_path
            session.mount("https://", PinnedBridgeAdapter(config.bridge_id))
        else:
            LOGGER.warning("No bridge CA certificate configured; using system trust store")
        return session

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> VendorBody:
        url = f"{self._config.resource_url}/{path}"
        LOGGER.debug("%s %s %s", method, url, payload or "")
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                headers=self._config.base_headers,
                timeout=self._config.timeout,
                verify=self._verify,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            raise BridgeUnreachable(f"Bridge rejected {method} {path}: {exc}", status_code=status_code) from exc
        except requests.RequestException as exc:
            raise BridgeUnreachable(f"Bridge unreachable for {method} {path}: {exc}") from exc

        try:
            body = VendorBody.from_json(response.json())
        except ValueError as exc:
            raise BridgeUnreachable(f"Bridge returned a non-JSON body for {method} {path}") from exc

        if body.has_errors:
            LOGGER.warning("Bridge reported %d error(s) for %s %s: %s", len(body.errors), method, path, body.errors)
        return body

    async def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> VendorBody:
        await self._limiter.acquire()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._request, method, path, payload))

    async def fetch_groups(self, kind: str) -> VendorBody:
        if kind not in GROUP_KINDS:
            raise ValueError(f"Unknown group kind {kind!r}, expected one of {GROUP_KINDS}")
        return await self._call("GET", kind)

    async def fetch_aggregate_ownership(self) -> VendorBody:
        return await self._call("GET", "grouped_light")

    async def fetch_lights(self) -> VendorBody:
        return await self._call("GET", "light")

    async def get_lights(self) -> List[Light]:
        return parse_lights(await self.fetch_lights())

    async def write_group_state(self, aggregate_id: str, payload: Dict[str, Any]) -> VendorBody:
        return await self._call("PUT", f"grouped_light/{aggregate_id}", payload)

    def close(self) -> None:
        self._session.close()


def parse_lights(body: VendorBody) -> List[Light]:
    lights: List[Light] = []
    for resource in body.data:
        try:
            lights.append(Light.from_resource(resource))
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping malformed light resource %s: %s", resource.get("id"), exc)
    return lights


__all__ = [
    "BridgeClient",
    "PinnedBridgeAdapter",
    "RateLimiter",
    "check_bridge_identity",
    "parse_lights",
]
