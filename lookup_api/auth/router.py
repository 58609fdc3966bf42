"""
Authentication router: login, who-am-I and logout.
Psychology: One generic failure message - the response never says which factor failed.
Intention: Regenerate the session on every successful login.
"""
import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from lookup_api.auth.sessions import SessionStoreError, current_session_user, end_session, start_session
from lookup_api.exceptions import ApiError, Unauthorized, ValidationFailed
from lookup_api.middleware.gate import route_gate
from lookup_api.middleware.logging import BusinessEventLogger
from lookup_api.models.account import LoginRequest, SessionUser, sanitize_string
from lookup_api.services.ip_reputation import client_ip

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials or account inactive"

router = APIRouter(prefix="/api/auth", tags=["authentication"])


def _superuser_matches(settings, username: str, password: str) -> bool:
    """Exact comparison against the configured superuser; unset means no superuser."""
    if not settings.superuser_configured:
        return False
    username_ok = hmac.compare_digest(username.encode("utf-8"), settings.superuser_username.encode("utf-8"))
    password_ok = hmac.compare_digest(password.encode("utf-8"), settings.superuser_password.encode("utf-8"))
    return username_ok and password_ok


async def _authenticate(request: Request, username: str, password: str, login_type: str) -> Optional[SessionUser]:
    services = request.app.state.services
    roles = services.settings.roles

    if login_type == roles.privileged:
        if not _superuser_matches(services.settings, username, password):
            return None
        return SessionUser(id=roles.privileged, username=username, name=roles.superuser_name, role=roles.privileged)

    account = await services.accounts.authenticate(username, password)
    if account is None:
        return None
    return SessionUser(id=str(account["_id"]), username=account["username"], name=account.get("name", ""), role=roles.managed)


@router.post("/login", dependencies=[Depends(route_gate(vpn=True, limiter="login"))])
async def login(payload: LoginRequest, request: Request) -> Dict[str, Any]:
    """Verify credentials for the declared login type and start a fresh session."""
    roles = request.app.state.services.settings.roles
    ip = client_ip(request)
    request_id = getattr(request.state, "request_id", None)

    for value in (payload.username, payload.password):
        if value is not None and not isinstance(value, str):
            raise ValidationFailed("Invalid input format")

    username = sanitize_string(payload.username)
    password = payload.password or ""
    login_type = payload.login_type if isinstance(payload.login_type, str) else ""
    if not username or not password or not login_type:
        raise ValidationFailed("Missing credentials")
    if login_type not in roles.roles:
        raise ValidationFailed("Invalid login type")

    try:
        user = await _authenticate(request, username, password, login_type)
    except Exception as e:
        logger.exception(f"Login lookup failed: {e}")
        raise ApiError(500, "Login failed")

    if user is None:
        BusinessEventLogger.log_login(username, login_type, success=False, ip=ip, request_id=request_id)
        raise Unauthorized(INVALID_CREDENTIALS)

    try:
        await start_session(request, user)
    except SessionStoreError as e:
        logger.error(f"Session regeneration failed: {e}")
        raise ApiError(500, "Login failed")

    BusinessEventLogger.log_login(username, user.role, success=True, ip=ip, user_id=user.id, request_id=request_id)
    return {"success": True, "user": user.model_dump()}


@router.get("/me")
async def me(request: Request) -> Dict[str, Any]:
    user = current_session_user(request)
    if user is None:
        raise Unauthorized("Not authenticated")
    return {"success": True, "user": user.model_dump()}


@router.post("/logout")
async def logout(request: Request) -> Dict[str, Any]:
    user = current_session_user(request)
    try:
        await end_session(request)
    except SessionStoreError as e:
        logger.error(f"Session destroy failed: {e}")
        raise ApiError(500, "Logout failed")

    BusinessEventLogger.log_logout(user.id if user else None, getattr(request.state, "request_id", None))
    return {"success": True}
