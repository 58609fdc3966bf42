"""
Application services.
Psychology: One container, built once per app, reached through `app.state.services`.
Intention: Tests swap the database or HTTP client without touching module globals.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from lookup_api.auth.passwords import PasswordHasher
from lookup_api.auth.sessions import MemorySessionStore, RedisSessionStore, SessionManager
from lookup_api.config import Settings
from lookup_api.database import MongoConnection, create_redis
from lookup_api.services.account_store import AccountStore
from lookup_api.services.ip_reputation import ReputationCache, VpnDetector
from lookup_api.services.rate_limiter import FixedWindowRateLimiter, login_limiter, search_limiter
from lookup_api.services.search_history import SearchHistoryLog
from lookup_api.services.search_proxy import SearchProxy

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Any
    http_client: httpx.AsyncClient
    hasher: PasswordHasher
    accounts: AccountStore
    history: SearchHistoryLog
    sessions: SessionManager
    vpn_detector: VpnDetector
    search_proxy: SearchProxy
    limiters: Dict[str, FixedWindowRateLimiter] = field(default_factory=dict)
    mongo: Optional[MongoConnection] = None
    redis: Any = None
    owns_http_client: bool = False

    async def close(self) -> None:
        if self.owns_http_client:
            await self.http_client.aclose()
        if self.redis is not None:
            await self.redis.aclose()
        if self.mongo is not None:
            await self.mongo.close()


def build_services(
    settings: Settings,
    database: Any = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceContainer:
    """Wire every service from settings; `database`/`http_client` override the defaults."""
    mongo = None
    if database is None:
        mongo = MongoConnection(settings)
        database = mongo.get_database()

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(follow_redirects=True)

    redis_client = None
    if settings.redis_url:
        redis_client = create_redis(settings)
        store = RedisSessionStore(redis_client)
        logger.info("Sessions stored in Redis")
    else:
        store = MemorySessionStore()
        logger.info("Sessions stored in process memory")

    hasher = PasswordHasher(settings.bcrypt_rounds)

    return ServiceContainer(
        settings=settings,
        database=database,
        http_client=http_client,
        hasher=hasher,
        accounts=AccountStore(database[settings.roles.collection], hasher, settings.roles),
        history=SearchHistoryLog(database[settings.history_collection]),
        sessions=SessionManager(settings, store),
        vpn_detector=VpnDetector(
            http_client,
            api_key=settings.vpnapi_key,
            api_base=settings.vpnapi_base,
            cache=ReputationCache(),
        ),
        search_proxy=SearchProxy(http_client, settings),
        limiters={"login": login_limiter(), "search": search_limiter()},
        mongo=mongo,
        redis=redis_client,
        owns_http_client=owns_http_client,
    )
