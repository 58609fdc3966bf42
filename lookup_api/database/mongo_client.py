# lookup_api/database/mongo_client.py
"""
MongoDB client management.
Psychology: Single responsibility - handles only the document database connection.
Intention: Create the client once per process and hand out database handles.
"""
import logging
from typing import Any, Optional

from pymongo import ASCENDING, DESCENDING, AsyncMongoClient, IndexModel

from lookup_api.config import Settings

logger = logging.getLogger(__name__)


class MongoConnection:
    """Owns the async Mongo client for the lifetime of the application."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client: Optional[AsyncMongoClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.settings.mongodb_url)

    def get_database(self) -> Any:
        if self._client is None:
            if not self.configured:
                raise RuntimeError("MONGODB_URL not set in environment variables")
            self._client = AsyncMongoClient(self.settings.mongodb_url)
            logger.info(f"MongoDB client created for database '{self.settings.mongodb_db_name}'")
        return self._client[self.settings.mongodb_db_name]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("MongoDB client closed")


async def ensure_indexes(database: Any, settings: Settings) -> None:
    """Create the unique and lookup indexes the stores rely on."""
    accounts = database[settings.roles.collection]
    await accounts.create_indexes([
        IndexModel([("username", ASCENDING)], unique=True, name="uniq_username"),
        IndexModel([("email", ASCENDING)], unique=True, name="uniq_email"),
        IndexModel([("createdAt", DESCENDING)], name="ix_created_at"),
    ])
    history = database[settings.history_collection]
    await history.create_indexes([
        IndexModel([("userId", ASCENDING), ("timestamp", DESCENDING)], name="ix_user_timestamp"),
        IndexModel([("timestamp", DESCENDING)], name="ix_timestamp"),
    ])


async def ping(database: Any) -> bool:
    try:
        await database.command("ping")
        return True
    except Exception as e:
        logger.warning(f"MongoDB ping failed: {e}")
        return False
