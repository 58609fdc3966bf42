"""
Structured logging middleware for the Lookup Portal API.
Psychology: Contextual logging with correlation IDs for debugging.
Intention: Production-ready logging with request tracing and an audit trail.
"""
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("lookup.api")
audit_logger = logging.getLogger("lookup.audit")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _session_user_id(request: Request) -> Optional[str]:
    user = getattr(request.state, "session_user", None)
    return user.id if user else None


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for structured HTTP request logging"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.start_time = time.perf_counter()

        self.log_request_start(request, request_id)

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = time.perf_counter() - request.state.start_time
            self.log_request_end(request, None, request_id, duration, exc)
            raise

        duration = time.perf_counter() - request.state.start_time
        self.log_request_end(request, response, request_id, duration, None)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}"
        return response

    def log_request_start(self, request: Request, request_id: str):
        log_data = {
            "event_name": "request_start",
            "timestamp": _utcnow(),
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "forwarded_for": request.headers.get("x-forwarded-for"),
            "user_agent": request.headers.get("user-agent"),
        }
        logger.debug("Request started", extra=log_data)

    def log_request_end(self, request: Request, response: Optional[Response],
                        request_id: str, duration: float, error: Optional[Exception]):
        log_data = {
            "event_name": "request_end",
            "timestamp": _utcnow(),
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "duration_ms": round(duration * 1000, 1),
        }

        if response is not None:
            log_data["status_code"] = response.status_code
            level = logging.INFO if response.status_code < 400 else logging.WARNING
        elif error is not None:
            log_data.update({
                "status_code": 500,
                "error_type": type(error).__name__,
                "error_message": str(error),
            })
            level = logging.ERROR
        else:
            level = logging.INFO

        user_id = _session_user_id(request)
        if user_id:
            log_data["user_id"] = user_id

        logger.log(level, f"{request.method} {request.url.path} -> {log_data.get('status_code')}", extra=log_data)


class BusinessEventLogger:
    """Log business events for auditing"""

    @staticmethod
    def log_event(event_type: str, event_data: Dict[str, Any],
                  user_id: Optional[str] = None, request_id: Optional[str] = None):
        log_data = {
            "event_name": "business_event",
            "timestamp": _utcnow(),
            "event_type": event_type,
            "event_data": event_data,
        }
        if user_id:
            log_data["user_id"] = user_id
        if request_id:
            log_data["request_id"] = request_id

        audit_logger.info(f"Business event: {event_type}", extra=log_data)

    @staticmethod
    def log_login(username: str, role: str, success: bool, ip: str,
                  user_id: Optional[str] = None, request_id: Optional[str] = None):
        BusinessEventLogger.log_event(
            event_type="login_succeeded" if success else "login_failed",
            event_data={"username": username, "role": role, "ip": ip},
            user_id=user_id,
            request_id=request_id,
        )

    @staticmethod
    def log_logout(user_id: Optional[str], request_id: Optional[str] = None):
        BusinessEventLogger.log_event("logout", {}, user_id=user_id, request_id=request_id)

    @staticmethod
    def log_search(kind: str, outcome: str, result_count: int,
                   user_id: Optional[str] = None, request_id: Optional[str] = None):
        BusinessEventLogger.log_event(
            event_type="search",
            event_data={"kind": kind, "outcome": outcome, "result_count": result_count},
            user_id=user_id,
            request_id=request_id,
        )

    @staticmethod
    def log_account_change(action: str, account_id: str,
                           user_id: Optional[str] = None, request_id: Optional[str] = None):
        BusinessEventLogger.log_event(
            event_type=f"account_{action}",
            event_data={"account_id": account_id},
            user_id=user_id,
            request_id=request_id,
        )

    @staticmethod
    def log_gate_rejection(check: str, code: Optional[str], path: str, ip: str,
                           request_id: Optional[str] = None):
        BusinessEventLogger.log_event(
            event_type="gate_rejection",
            event_data={"check": check, "code": code, "path": path, "ip": ip},
            request_id=request_id,
        )


def setup_structured_logging(level: str = "INFO", json_output: bool = False):
    """Route stdlib logging through structlog's renderers."""
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())

    return structlog.get_logger("lookup.api")
