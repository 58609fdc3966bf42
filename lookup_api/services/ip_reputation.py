"""
VPN / proxy heuristics for client addresses.
Psychology: Best-effort filter - a blocklist plus an optional reputation lookup.
Intention: Block obvious datacenter traffic without ever failing a request on our own errors.
"""
import ipaddress
import logging
import time
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import httpx
from fastapi import Request

from lookup_api.services.datacenter_ranges import DATACENTER_NETWORKS

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

EXEMPT_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("::1/128"),
]

CACHE_TTL_SECONDS = 5 * 60
REPUTATION_TIMEOUT_SECONDS = 3.0


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else ""


def parse_ip(value: str) -> Optional[IPAddress]:
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def is_exempt(address: IPAddress) -> bool:
    return any(address.version == net.version and address in net for net in EXEMPT_NETWORKS)


class ReputationCache:
    """IP -> verdict with a fixed TTL; stale entries are pruned once per TTL."""

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._next_prune = clock() + ttl
        self._entries: Dict[str, Tuple[bool, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, ip: str) -> Optional[bool]:
        entry = self._entries.get(ip)
        if entry is None:
            return None
        verdict, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            self._entries.pop(ip, None)
            return None
        return verdict

    def set(self, ip: str, verdict: bool) -> None:
        now = self._clock()
        if now >= self._next_prune:
            self.prune()
        self._entries[ip] = (verdict, now)

    def prune(self) -> int:
        now = self._clock()
        stale = [ip for ip, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl]
        for ip in stale:
            del self._entries[ip]
        self._next_prune = now + self.ttl
        return len(stale)


class VpnDetector:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        api_base: str = "https://vpnapi.io/api",
        networks: Iterable[ipaddress.IPv4Network] = DATACENTER_NETWORKS,
        cache: Optional[ReputationCache] = None,
    ):
        self.http_client = http_client
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.networks = list(networks)
        self.cache = cache if cache is not None else ReputationCache()

    def in_static_blocklist(self, address: IPAddress) -> bool:
        if address.version != 4:
            return False
        return any(address in network for network in self.networks)

    async def is_blocked(self, ip: str) -> bool:
        address = parse_ip(ip)
        if address is None or is_exempt(address):
            return False

        if self.in_static_blocklist(address):
            logger.info(f"VPN/Datacenter IP blocked: {ip}")
            return True

        normalized = str(address)
        cached = self.cache.get(normalized)
        if cached is not None:
            return cached

        if not self.api_key:
            return False

        verdict = await self._lookup(normalized)
        if verdict is None:
            return False
        self.cache.set(normalized, verdict)
        if verdict:
            logger.info(f"VPN detected via reputation API: {normalized}")
        return verdict

    async def _lookup(self, ip: str) -> Optional[bool]:
        try:
            response = await self.http_client.get(
                f"{self.api_base}/{ip}",
                params={"key": self.api_key},
                timeout=REPUTATION_TIMEOUT_SECONDS,
            )
            if response.status_code != 200:
                return None
            security = response.json().get("security") or {}
            return bool(
                security.get("vpn") or security.get("proxy")
                or security.get("tor") or security.get("relay")
            )
        except Exception as e:
            logger.warning(f"VPN API check failed for {ip}: {e}")
            return None
