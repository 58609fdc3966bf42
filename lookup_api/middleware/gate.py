"""
Request gate.
Psychology: Layered security - each check is independent and short-circuits.
Intention: Keep the order of checks explicit and testable on its own.

Global checks run in `GateMiddleware` for every request; route checks run
through the `route_gate` dependency. Both use the same driver, `run_checks`.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from lookup_api.config import Settings
from lookup_api.exceptions import ApiError, error_response
from lookup_api.middleware.logging import BusinessEventLogger
from lookup_api.monitoring import BusinessMetrics
from lookup_api.services.ip_reputation import client_ip

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"
WHOAMI_PATH = "/api/auth/me"

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}

INTERCEPTION_TOOLS = (
    "charles", "fiddler", "mitmproxy", "burp", "zap",
    "httpdebugger", "proxyman", "httpcanary",
)

BROWSER_MARKERS = ("mozilla", "chrome", "safari")

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"

VPN_MESSAGE = "VPN/Proxy detected. Please disable VPN to continue."


@dataclass
class GateRejection:
    status_code: int
    message: str
    code: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


CheckFn = Callable[[Request], Awaitable[Optional[GateRejection]]]


@dataclass
class GateCheck:
    name: str
    run: CheckFn
    applies: Callable[[Request], bool] = lambda request: True


async def run_checks(
    checks: Sequence[GateCheck], request: Request
) -> Optional[Tuple[GateCheck, GateRejection]]:
    """Evaluate checks in order; return the first rejection, if any."""
    for check in checks:
        if not check.applies(request):
            continue
        rejection = await check.run(request)
        if rejection is not None:
            return check, rejection
    return None


def _record_rejection(request: Request, check: GateCheck, rejection: GateRejection) -> None:
    BusinessMetrics.track_gate_rejection(check.name, rejection.code)
    BusinessEventLogger.log_gate_rejection(
        check=check.name,
        code=rejection.code,
        path=request.url.path,
        ip=client_ip(request),
        request_id=getattr(request.state, "request_id", None),
    )


# ============================================================================
# GLOBAL CHECKS
# ============================================================================

def is_api_path(request: Request) -> bool:
    return request.url.path.startswith(API_PREFIX)


def looks_like_browser(user_agent: str) -> bool:
    user_agent = user_agent.lower()
    return any(marker in user_agent for marker in BROWSER_MARKERS)


async def interception_check(request: Request) -> Optional[GateRejection]:
    user_agent = request.headers.get("user-agent", "").lower()
    if any(tool in user_agent for tool in INTERCEPTION_TOOLS):
        return GateRejection(status.HTTP_403_FORBIDDEN, "Request blocked for security reasons", "SECURITY_BLOCK")
    return None


class OriginPolicy:
    def __init__(self, allowed_origins: Sequence[str], allowed_domains: Sequence[str]):
        self.allowed_origins = list(allowed_origins)
        self.allowed_domains = list(allowed_domains)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls(settings.allowed_origins, settings.allowed_origin_domains)

    def is_allowed(self, value: str) -> bool:
        return (
            any(value.startswith(allowed) for allowed in self.allowed_origins)
            or any(domain in value for domain in self.allowed_domains)
        )

    async def check(self, request: Request) -> Optional[GateRejection]:
        origin = request.headers.get("origin")
        referer = request.headers.get("referer")

        if not origin and not referer and request.url.path != WHOAMI_PATH:
            if not looks_like_browser(request.headers.get("user-agent", "")):
                return GateRejection(status.HTTP_403_FORBIDDEN, "Direct API access not allowed", "API_ACCESS_DENIED")

        if origin and not self.is_allowed(origin):
            return GateRejection(status.HTTP_403_FORBIDDEN, "Origin not allowed", "CORS_BLOCKED")

        if referer and not self.is_allowed(referer):
            return GateRejection(status.HTTP_403_FORBIDDEN, "Invalid request source", "REFERER_BLOCKED")

        return None

    def cors_headers(self, request: Request) -> Dict[str, str]:
        origin = request.headers.get("origin")
        if not origin or not self.is_allowed(origin):
            return {}
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Vary": "Origin",
        }


def global_checks(policy: OriginPolicy) -> List[GateCheck]:
    return [
        GateCheck("interception", interception_check),
        GateCheck("origin", policy.check, applies=is_api_path),
    ]


class GateMiddleware(BaseHTTPMiddleware):
    """Security headers, interception and origin checks for every request."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.policy = OriginPolicy.from_settings(settings)
        self.checks = global_checks(self.policy)

    async def dispatch(self, request: Request, call_next):
        result = await run_checks(self.checks, request)
        if result is not None:
            check, rejection = result
            _record_rejection(request, check, rejection)
            response = error_response(rejection.status_code, rejection.message, rejection.code, rejection.headers)
        elif request.method == "OPTIONS" and is_api_path(request) and self.policy.cors_headers(request):
            response = Response(status_code=status.HTTP_204_NO_CONTENT)
        else:
            response = await call_next(request)

        if result is None and is_api_path(request):
            response.headers.update(self.policy.cors_headers(request))
        response.headers.update(SECURITY_HEADERS)
        return response


# ============================================================================
# ROUTE CHECKS
# ============================================================================

async def vpn_check(request: Request) -> Optional[GateRejection]:
    detector = request.app.state.services.vpn_detector
    if await detector.is_blocked(client_ip(request)):
        return GateRejection(status.HTTP_403_FORBIDDEN, VPN_MESSAGE, "VPN_DETECTED")
    return None


async def auth_check(request: Request) -> Optional[GateRejection]:
    if getattr(request.state, "session_user", None) is None:
        return GateRejection(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    return None


async def privileged_check(request: Request) -> Optional[GateRejection]:
    user = getattr(request.state, "session_user", None)
    privileged = request.app.state.services.settings.roles.privileged
    if user is None or user.role != privileged:
        return GateRejection(status.HTTP_403_FORBIDDEN, "Forbidden", "FORBIDDEN")
    return None


def rate_limit_check(limiter_name: str) -> CheckFn:
    async def check(request: Request) -> Optional[GateRejection]:
        limiter = request.app.state.services.limiters[limiter_name]
        result = limiter.hit(client_ip(request))
        request.state.rate_limit_headers = result.headers()
        if not result.allowed:
            headers = dict(result.headers())
            headers["Retry-After"] = str(result.reset_seconds)
            return GateRejection(status.HTTP_429_TOO_MANY_REQUESTS, limiter.message, "RATE_LIMITED", headers)
        return None
    return check


def route_checks(
    vpn: bool = False,
    auth: bool = False,
    privileged: bool = False,
    limiter: Optional[str] = None,
) -> List[GateCheck]:
    """Build the per-route chain: VPN, authentication, role, rate limit."""
    checks: List[GateCheck] = []
    if vpn:
        checks.append(GateCheck("vpn", vpn_check))
    if auth or privileged:
        checks.append(GateCheck("auth", auth_check))
    if privileged:
        checks.append(GateCheck("role", privileged_check))
    if limiter:
        checks.append(GateCheck(f"rate_limit:{limiter}", rate_limit_check(limiter)))
    return checks


def route_gate(
    vpn: bool = False,
    auth: bool = False,
    privileged: bool = False,
    limiter: Optional[str] = None,
):
    """FastAPI dependency running the route checks; raises ApiError on rejection."""
    checks = route_checks(vpn=vpn, auth=auth, privileged=privileged, limiter=limiter)

    async def dependency(request: Request, response: Response) -> None:
        result = await run_checks(checks, request)
        if result is not None:
            check, rejection = result
            _record_rejection(request, check, rejection)
            raise ApiError(rejection.status_code, rejection.message, rejection.code, rejection.headers)
        response.headers.update(getattr(request.state, "rate_limit_headers", None) or {})

    return dependency
