"""
Server-side sessions referenced by an opaque signed cookie.
Psychology: The cookie proves nothing on its own - the store is the authority.
Intention: Create, regenerate, slide and destroy sessions with explicit lifecycles.
"""
import hashlib
import json
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Request, Response
from itsdangerous import BadSignature, Signer
from starlette.middleware.base import BaseHTTPMiddleware

from lookup_api.config import Settings
from lookup_api.models.account import SessionUser

logger = logging.getLogger(__name__)


class SessionStoreError(Exception):
    """The backing store could not complete an operation."""


class MemorySessionStore:
    """Per-process store; expired entries are pruned every `check_period` seconds."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, check_period: float = 60):
        self._clock = clock
        self.check_period = check_period
        self._next_prune = clock() + check_period
        self._data: Dict[str, Tuple[Dict[str, Any], float]] = {}

    def prune(self) -> int:
        now = self._clock()
        expired = [token for token, (_, expires_at) in self._data.items() if expires_at <= now]
        for token in expired:
            del self._data[token]
        self._next_prune = now + self.check_period
        return len(expired)

    def _maybe_prune(self) -> None:
        if self._clock() >= self._next_prune:
            self.prune()

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        entry = self._data.get(token)
        if entry is None:
            return None
        data, expires_at = entry
        if expires_at <= self._clock():
            self._data.pop(token, None)
            return None
        return dict(data)

    async def set(self, token: str, data: Dict[str, Any], ttl: int) -> None:
        self._maybe_prune()
        self._data[token] = (dict(data), self._clock() + ttl)

    async def touch(self, token: str, ttl: int) -> None:
        entry = self._data.get(token)
        if entry is not None:
            self._data[token] = (entry[0], self._clock() + ttl)

    async def delete(self, token: str) -> None:
        self._data.pop(token, None)

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._data.values() if expires_at > now)


class RedisSessionStore:
    """Shared store for multi-process deployments."""

    def __init__(self, redis_client, prefix: str = "sess:"):
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, token: str) -> str:
        return f"{self.prefix}{token}"

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.redis.get(self._key(token))
        except Exception as e:
            raise SessionStoreError(str(e)) from e
        if not raw:
            return None
        return json.loads(raw)

    async def set(self, token: str, data: Dict[str, Any], ttl: int) -> None:
        try:
            await self.redis.setex(self._key(token), ttl, json.dumps(data))
        except Exception as e:
            raise SessionStoreError(str(e)) from e

    async def touch(self, token: str, ttl: int) -> None:
        try:
            await self.redis.expire(self._key(token), ttl)
        except Exception as e:
            raise SessionStoreError(str(e)) from e

    async def delete(self, token: str) -> None:
        try:
            await self.redis.delete(self._key(token))
        except Exception as e:
            raise SessionStoreError(str(e)) from e


class SessionManager:
    """Signs cookie tokens and drives the store."""

    def __init__(self, settings: Settings, store):
        self.settings = settings
        self.store = store
        self.ttl = settings.session_ttl_seconds
        self.cookie_name = settings.session_cookie_name
        self._signer = Signer(settings.session_secret, salt="lookup-session", digest_method=hashlib.sha256)

    # -- cookie signing -----------------------------------------------------

    def sign(self, token: str) -> str:
        return self._signer.sign(token).decode("utf-8")

    def unsign(self, cookie_value: Optional[str]) -> Optional[str]:
        if not cookie_value:
            return None
        try:
            token = self._signer.unsign(cookie_value).decode("utf-8")
        except BadSignature:
            return None
        return token or None

    # -- lifecycle ------------------------------------------------------------

    async def load(self, cookie_value: Optional[str]) -> Tuple[Optional[str], Optional[SessionUser]]:
        token = self.unsign(cookie_value)
        if token is None:
            return None, None
        data = await self.store.get(token)
        if not data or "user" not in data:
            return None, None
        return token, SessionUser(**data["user"])

    async def regenerate(self, old_token: Optional[str], user: SessionUser) -> str:
        """Issue a fresh token for `user`; the previous token stops authenticating."""
        if old_token:
            await self.store.delete(old_token)
        token = secrets.token_urlsafe(32)
        await self.store.set(token, {"user": user.model_dump()}, self.ttl)
        return token

    async def refresh(self, token: str) -> None:
        await self.store.touch(token, self.ttl)

    async def destroy(self, token: Optional[str]) -> None:
        if token:
            await self.store.delete(token)

    # -- cookies ----------------------------------------------------------------

    def set_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            key=self.cookie_name,
            value=self.sign(token),
            max_age=self.ttl,
            path="/",
            httponly=True,
            secure=self.settings.production,
            samesite="strict" if self.settings.production else "lax",
        )

    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            httponly=True,
            secure=self.settings.production,
            samesite="strict" if self.settings.production else "lax",
        )


def current_session_user(request: Request) -> Optional[SessionUser]:
    return getattr(request.state, "session_user", None)


async def start_session(request: Request, user: SessionUser) -> None:
    """Regenerate the request's session for a freshly authenticated user."""
    manager: SessionManager = request.app.state.services.sessions
    old_token = getattr(request.state, "session_token", None)
    token = await manager.regenerate(old_token, user)
    request.state.session_token = token
    request.state.session_user = user
    request.state.session_action = "set"


async def end_session(request: Request) -> None:
    manager: SessionManager = request.app.state.services.sessions
    await manager.destroy(getattr(request.state, "session_token", None))
    request.state.session_token = None
    request.state.session_user = None
    request.state.session_action = "clear"


class SessionMiddleware(BaseHTTPMiddleware):
    """Attach the session identity to the request and keep the cookie rolling."""

    async def dispatch(self, request: Request, call_next):
        manager: SessionManager = request.app.state.services.sessions
        request.state.session_action = None
        try:
            token, user = await manager.load(request.cookies.get(manager.cookie_name))
        except SessionStoreError as e:
            logger.warning(f"Session lookup failed, treating request as anonymous: {e}")
            token, user = None, None
        request.state.session_token = token
        request.state.session_user = user

        response = await call_next(request)

        action = request.state.session_action
        if action == "set" and request.state.session_token:
            manager.set_cookie(response, request.state.session_token)
        elif action == "clear":
            manager.clear_cookie(response)
        elif token and user:
            try:
                await manager.refresh(token)
                manager.set_cookie(response, token)
            except SessionStoreError as e:
                logger.warning(f"Session refresh failed: {e}")
        return response
