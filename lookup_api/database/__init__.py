"""
Database package initialization.
Exports database clients and utilities.
"""
from .mongo_client import MongoConnection, ensure_indexes, ping
from .redis_client import create_redis

__all__ = [
    'MongoConnection',
    'ensure_indexes',
    'ping',
    'create_redis',
]
