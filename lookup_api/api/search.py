"""
Search routes.
Psychology: The proxy decides the outcome once; routes only translate it to HTTP.
Intention: Every successful search by a signed-in caller leaves a history entry.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from lookup_api.auth.sessions import current_session_user
from lookup_api.exceptions import ApiError, ValidationFailed
from lookup_api.middleware.gate import route_gate
from lookup_api.middleware.logging import BusinessEventLogger
from lookup_api.models.account import ALL_FEATURES, sanitize_string
from lookup_api.models.search import SearchKind
from lookup_api.monitoring import BusinessMetrics
from lookup_api.services.search_proxy import (
    VEHICLE_FAILURE_MESSAGE,
    SearchFailed,
    SearchOk,
    SearchOutcome,
    SearchRejected,
    SearchTimeout,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])

search_gate = route_gate(vpn=True, auth=True, limiter="search")

OUTCOME_STATUS = {
    SearchRejected: 400,
    SearchFailed: 500,
    SearchTimeout: 504,
}

# route param -> (lookup index parameter, history kind)
LOOKUP_ROUTES = {
    "email": ("email", SearchKind.EMAIL),
    "id": ("id", SearchKind.ID),
    "aadhar": ("id", SearchKind.AADHAR),
    "pan": ("id", SearchKind.PAN),
}


def _outcome_name(outcome: SearchOutcome) -> str:
    return type(outcome).__name__.replace("Search", "").lower()


async def _record(request: Request, kind: SearchKind, query: str, outcome: SearchOutcome) -> None:
    user = current_session_user(request)
    result_count = outcome.result_count if isinstance(outcome, SearchOk) else 0

    BusinessMetrics.track_search(kind.value)
    BusinessEventLogger.log_search(
        kind.value,
        _outcome_name(outcome),
        result_count,
        user_id=user.id if user else None,
        request_id=getattr(request.state, "request_id", None),
    )

    if isinstance(outcome, SearchOk) and user is not None:
        await request.app.state.services.history.record(user.id, user.role, kind.value, query, result_count)


def _render(outcome: SearchOutcome) -> Dict[str, Any]:
    if isinstance(outcome, SearchOk):
        return {"success": True, "data": outcome.data}
    raise ApiError(OUTCOME_STATUS.get(type(outcome), 500), outcome.message)


def _require_query(query: Optional[str], message: str = "Query parameter required") -> str:
    query = sanitize_string(query)
    if not query:
        raise ValidationFailed(message)
    return query


@router.get("/search/mobile", dependencies=[Depends(search_gate)])
async def search_mobile(request: Request, query: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    """Primary and alternate number indexes, merged without duplicates."""
    query = _require_query(query)
    outcome = await request.app.state.services.search_proxy.mobile(query)
    await _record(request, SearchKind.MOBILE, query, outcome)
    return _render(outcome)


@router.get("/search/vehicle-info", dependencies=[Depends(search_gate)])
async def search_vehicle_info(request: Request, query: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    return await _vehicle_search(request, query, "vehicle-puc", SearchKind.VEHICLE_INFO)


@router.get("/search/vehicle-challan", dependencies=[Depends(search_gate)])
async def search_vehicle_challan(request: Request, query: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    return await _vehicle_search(request, query, "challan", SearchKind.VEHICLE_CHALLAN)


async def _vehicle_search(request: Request, query: Optional[str], service: str, kind: SearchKind) -> Dict[str, Any]:
    # provider problems are reported as a 200 with a message
    query = _require_query(query, VEHICLE_FAILURE_MESSAGE)
    outcome = await request.app.state.services.search_proxy.vehicle(service, query)
    await _record(request, kind, query, outcome)
    if isinstance(outcome, SearchOk):
        return {"success": True, "data": outcome.data}
    return {"success": True, "data": None, "message": VEHICLE_FAILURE_MESSAGE}


@router.get("/search/ip", dependencies=[Depends(search_gate)])
async def search_ip(request: Request, query: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    query = _require_query(query, "IP address is required")
    outcome = await request.app.state.services.search_proxy.ip_lookup(query)
    await _record(request, SearchKind.IP, query, outcome)
    return _render(outcome)


@router.get("/search/{search_type}", dependencies=[Depends(search_gate)])
async def search_lookup(search_type: str, request: Request, query: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    """email, id, aadhar and pan all go to the same lookup index."""
    route = LOOKUP_ROUTES.get(search_type)
    if route is None:
        raise ApiError(404, "Not found")
    param, kind = route

    query = _require_query(query)
    outcome = await request.app.state.services.search_proxy.lookup(param, query)
    await _record(request, kind, query, outcome)
    return _render(outcome)


@router.get("/user/features", dependencies=[Depends(route_gate(auth=True))])
async def user_features(request: Request) -> Dict[str, Any]:
    services = request.app.state.services
    user = current_session_user(request)
    if user is None or user.id == services.settings.roles.privileged:
        return {"success": True, "features": list(ALL_FEATURES)}
    try:
        features = await services.accounts.features_for(user.id)
    except Exception as e:
        logger.error(f"Feature lookup failed for {user.id}, returning all features: {e}")
        features = list(ALL_FEATURES)
    return {"success": True, "features": features}
