"""
Search kinds and history entries.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import Field

from lookup_api.models.account import CamelModel


class SearchKind(str, Enum):
    MOBILE = "mobile"
    EMAIL = "email"
    ID = "id"
    AADHAR = "aadhar"
    PAN = "pan"
    VEHICLE_INFO = "vehicle_info"
    VEHICLE_CHALLAN = "vehicle_challan"
    IP = "ip"


# keys of the per-kind counters returned by the account details endpoint
STATS_KEYS: Dict[str, SearchKind] = {
    "mobile": SearchKind.MOBILE,
    "email": SearchKind.EMAIL,
    "id": SearchKind.ID,
    "aadhar": SearchKind.AADHAR,
    "pan": SearchKind.PAN,
    "vehicleInfo": SearchKind.VEHICLE_INFO,
    "vehicleChallan": SearchKind.VEHICLE_CHALLAN,
    "ip": SearchKind.IP,
}


class SearchHistoryEntry(CamelModel):
    id: str
    user_id: str
    user_type: str
    search_type: str
    search_query: str
    result_count: int = Field(default=0, ge=0)
    timestamp: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "SearchHistoryEntry":
        return cls(
            id=str(doc["_id"]),
            user_id=doc["userId"],
            user_type=doc["userType"],
            search_type=doc["searchType"],
            search_query=doc["searchQuery"],
            result_count=doc.get("resultCount", 0),
            timestamp=doc["timestamp"],
        )
