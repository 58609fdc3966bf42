"""
Append-only search history.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List

from pymongo import DESCENDING

from lookup_api.models.search import STATS_KEYS
from lookup_api.services.account_store import utcnow


class SearchHistoryLog:
    def __init__(self, collection: Any):
        self.collection = collection

    async def record(self, user_id: str, user_type: str, search_type: str,
                     query: str, result_count: int) -> Dict[str, Any]:
        entry = {
            "userId": user_id,
            "userType": user_type,
            "searchType": search_type,
            "searchQuery": query,
            "resultCount": max(int(result_count), 0),
            "timestamp": utcnow(),
        }
        result = await self.collection.insert_one(entry)
        entry["_id"] = result.inserted_id
        return entry

    async def list_for_actor(self, user_id: str) -> List[Dict[str, Any]]:
        cursor = self.collection.find({"userId": user_id}, sort=[("timestamp", DESCENDING), ("_id", DESCENDING)])
        return await cursor.to_list(None)

    async def count_since(self, since: datetime) -> int:
        return await self.collection.count_documents({"timestamp": {"$gte": since}})

    async def count_last_day(self) -> int:
        return await self.count_since(utcnow() - timedelta(hours=24))


def count_by_kind(entries: List[Dict[str, Any]]) -> Dict[str, int]:
    stats = {"total": len(entries)}
    for key, kind in STATS_KEYS.items():
        stats[key] = sum(1 for entry in entries if entry.get("searchType") == kind.value)
    return stats
