"""
Search proxy for the external lookup services.
Psychology: Decide the result shape once, at the boundary.
Intention: Routes receive a tagged outcome and never re-inspect raw provider payloads.
"""
import asyncio
import ipaddress
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from lookup_api.config import Settings
from lookup_api.monitoring import BusinessMetrics

logger = logging.getLogger(__name__)

LOOKUP_TIMEOUT_SECONDS = 15.0
VEHICLE_TIMEOUT_SECONDS = 20.0
IP_TIMEOUT_SECONDS = 10.0

REQUEST_HEADERS = {
    "User-Agent": "SecurePortal/1.0",
    "Accept": "application/json",
}

IP_FIELDS = "status,message,country,countryCode,region,regionName,city,zip,lat,lon,timezone,isp,org,as,query"

VEHICLE_FAILURE_MESSAGE = "There are some problem please contact developer"


# ============================================================================
# OUTCOMES
# ============================================================================

@dataclass
class SearchOk:
    data: Any
    result_count: int


@dataclass
class SearchEmpty:
    """Upstream answered but had nothing usable; reported without provider detail."""
    message: str


@dataclass
class SearchRejected:
    """The query itself was refused, locally or by the provider."""
    message: str


@dataclass
class SearchTimeout:
    message: str


@dataclass
class SearchFailed:
    message: str


SearchOutcome = Union[SearchOk, SearchEmpty, SearchRejected, SearchTimeout, SearchFailed]


class UpstreamTimeout(Exception):
    pass


class UpstreamError(Exception):
    pass


# ============================================================================
# PAYLOAD HELPERS
# ============================================================================

def as_records(payload: Any) -> List[Any]:
    """Arrays pass through, a single object becomes a one-item list, anything else is dropped."""
    if isinstance(payload, list):
        return list(payload)
    if isinstance(payload, dict):
        return [payload]
    return []


def deduplicate(records: Sequence[Any]) -> List[Any]:
    """Drop records whose serialized field-set equals an earlier one."""
    seen = set()
    unique: List[Any] = []
    for record in records:
        key = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def _ok_section(payload: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    section = payload.get(name)
    if isinstance(section, dict) and section.get("status") == 200:
        return section
    return None


def filter_vehicle_payload(payload: Any, service: str) -> Dict[str, Any]:
    """Keep only vehicle data; provider metadata, credits and telemetry are stripped."""
    if not isinstance(payload, dict):
        return {}
    filtered: Dict[str, Any] = {}
    if service == "challan":
        challan = _ok_section(payload, "challan")
        if challan is not None:
            filtered["challan"] = challan
    else:
        vehicle = _ok_section(payload, "vehicle")
        if vehicle is not None:
            filtered["vehicle"] = vehicle
        puc = _ok_section(payload, "puc")
        if puc is not None:
            filtered["puc"] = puc
    if payload.get("vehicle_number"):
        filtered["vehicle_number"] = payload["vehicle_number"]
    return filtered


def challan_count(filtered: Dict[str, Any]) -> int:
    data = (filtered.get("challan") or {}).get("data")
    records = data.get("data") if isinstance(data, dict) else None
    return len(records) if isinstance(records, list) else 0


def is_ip_literal(value: str) -> bool:
    # scoped IPv6 literals (fe80::1%eth0) are not valid lookup targets
    if "%" in value:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


# ============================================================================
# PROXY
# ============================================================================

class SearchProxy:
    """Forwards validated queries to the lookup, vehicle and IP providers."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self.http_client = http_client
        self.lookup_base = settings.lookup_api_base.rstrip("/")
        self.vehicle_base = settings.vehicle_api_base.rstrip("/")
        self.vehicle_key = settings.vehicle_api_key
        self.ip_base = settings.ip_api_base.rstrip("/")

    async def _get_json(self, service: str, url: str, params: Optional[Dict[str, str]], timeout: float) -> Any:
        try:
            response = await self.http_client.get(url, params=params, headers=REQUEST_HEADERS, timeout=timeout)
        except httpx.TimeoutException as e:
            BusinessMetrics.track_upstream(service, "timeout")
            raise UpstreamTimeout(str(e)) from e
        except httpx.HTTPError as e:
            BusinessMetrics.track_upstream(service, "transport_error")
            raise UpstreamError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            BusinessMetrics.track_upstream(service, f"http_{response.status_code}")
            raise UpstreamError(f"API responded with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            BusinessMetrics.track_upstream(service, "invalid_json")
            raise UpstreamError("API returned invalid JSON") from e

        BusinessMetrics.track_upstream(service, "ok")
        return payload

    async def lookup(self, param: str, query: str) -> SearchOutcome:
        """Single call to the lookup index keyed by `param` (email, id...)."""
        try:
            data = await self._get_json(
                "lookup", f"{self.lookup_base}/search", {param: query}, LOOKUP_TIMEOUT_SECONDS
            )
        except UpstreamTimeout:
            return SearchTimeout("Search request timed out")
        except UpstreamError as e:
            logger.error(f"Search {param} error: {e}")
            return SearchFailed("Search failed")

        if isinstance(data, list):
            count = len(data)
        else:
            count = 1 if data else 0
        return SearchOk(data=data, result_count=count)

    async def mobile(self, query: str) -> SearchOutcome:
        """Primary and alternate index queried together; one failing leg is tolerated."""
        legs = await asyncio.gather(
            self._get_json("lookup", f"{self.lookup_base}/search", {"mobile": query}, LOOKUP_TIMEOUT_SECONDS),
            self._get_json("lookup", f"{self.lookup_base}/search", {"alt": query}, LOOKUP_TIMEOUT_SECONDS),
            return_exceptions=True,
        )

        records: List[Any] = []
        failures: List[BaseException] = []
        for leg in legs:
            if isinstance(leg, BaseException):
                failures.append(leg)
                continue
            records.extend(as_records(leg))

        if len(failures) == len(legs):
            logger.error(f"Mobile search error: {'; '.join(str(f) for f in failures)}")
            if all(isinstance(f, UpstreamTimeout) for f in failures):
                return SearchTimeout("Search request timed out")
            return SearchFailed("Search failed")

        unique = deduplicate(records)
        return SearchOk(data=unique, result_count=len(unique))

    async def vehicle(self, service: str, vehicle_number: str) -> SearchOutcome:
        """`service` is "challan" or "vehicle-puc"."""
        params = {
            "api_key": self.vehicle_key,
            "service": service,
            "vehicle_number": vehicle_number,
        }
        try:
            raw = await self._get_json("vehicle", f"{self.vehicle_base}/", params, VEHICLE_TIMEOUT_SECONDS)
        except (UpstreamTimeout, UpstreamError) as e:
            logger.error(f"Vehicle {service} API error: {e}")
            return SearchEmpty(VEHICLE_FAILURE_MESSAGE)

        filtered = filter_vehicle_payload(raw, service)
        if service == "challan":
            if "challan" not in filtered:
                return SearchEmpty(VEHICLE_FAILURE_MESSAGE)
            return SearchOk(data=filtered, result_count=challan_count(filtered))

        if "vehicle" not in filtered:
            return SearchEmpty(VEHICLE_FAILURE_MESSAGE)
        return SearchOk(data=filtered, result_count=1)

    async def ip_lookup(self, ip: str) -> SearchOutcome:
        if not is_ip_literal(ip):
            return SearchRejected("Invalid IP address format")

        try:
            data = await self._get_json(
                "ip", f"{self.ip_base}/json/{quote(ip, safe=':')}", {"fields": IP_FIELDS}, IP_TIMEOUT_SECONDS
            )
        except UpstreamTimeout:
            return SearchTimeout("IP lookup request timed out")
        except UpstreamError as e:
            logger.error(f"IP API error: {e}")
            return SearchFailed("IP lookup failed")

        if not isinstance(data, dict):
            return SearchFailed("IP lookup failed")
        if data.get("status") == "fail":
            return SearchRejected(data.get("message") or "Invalid IP address or lookup failed")
        return SearchOk(data=data, result_count=1 if data.get("status") == "success" else 0)
