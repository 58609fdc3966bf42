import redis.asyncio as redis

from lookup_api.config import Settings


def create_redis(settings: Settings) -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)
