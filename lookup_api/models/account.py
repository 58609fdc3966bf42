"""
Account and session identity models.
Psychology: Clear boundaries - what is stored, what is accepted, what is returned.
Intention: Make it impossible for a response model to carry the password hash.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ALL_FEATURES: List[str] = ["mobile", "email", "aadhar", "pan", "vehicle-info", "vehicle-challan", "ip"]

MAX_INPUT_LENGTH = 500
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,50}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def sanitize_string(value: Any) -> str:
    """Non-strings collapse to an empty string so operator objects never reach a query."""
    if not isinstance(value, str):
        return ""
    return value.strip()[:MAX_INPUT_LENGTH]


def is_valid_username(username: str) -> bool:
    return bool(USERNAME_PATTERN.match(username))


def is_valid_password(password: str) -> bool:
    return isinstance(password, str) and 6 <= len(password) <= 100


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email)) and len(email) <= 255


def is_valid_name(name: str) -> bool:
    return 2 <= len(name) <= 100


def filter_features(features: List[Any]) -> List[str]:
    """Keep recognised feature names, in the order given, without duplicates."""
    selected: List[str] = []
    for feature in features:
        if isinstance(feature, str) and feature in ALL_FEATURES and feature not in selected:
            selected.append(feature)
    return selected


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountCreate(BaseModel):
    """Raw create payload; fields are sanitised, format checks happen in the store."""
    username: Any = None
    password: Any = None
    name: Any = None
    email: Any = None
    status: Any = None

    @field_validator("username", "password", "name", "email", "status", mode="before")
    @classmethod
    def sanitize(cls, v: Any) -> str:
        return sanitize_string(v)


class AccountUpdate(BaseModel):
    """Partial update; a field left as None is not touched."""
    username: Any = None
    password: Any = None
    name: Any = None
    email: Any = None
    status: Any = None

    def supplied(self) -> Dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump().items()
            if value is not None and value != ""
        }


class FeaturesUpdate(BaseModel):
    features: Any = None


class AccountOut(CamelModel):
    id: str
    username: str
    name: str
    email: str
    status: AccountStatus = AccountStatus.ACTIVE
    features: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any], with_features: bool = False) -> "AccountOut":
        return cls(
            id=str(doc["_id"]),
            username=doc["username"],
            name=doc.get("name", ""),
            email=doc.get("email", ""),
            status=doc.get("status", AccountStatus.ACTIVE.value),
            features=doc.get("features") if with_features else None,
            created_at=doc.get("createdAt"),
            last_login=doc.get("lastLogin"),
        )

    def public(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class SessionUser(BaseModel):
    """Identity held server-side for an authenticated session."""
    id: str
    username: str
    name: str
    role: str


class LoginRequest(BaseModel):
    username: Any = None
    password: Any = None
    login_type: Any = Field(default=None, alias="loginType")

    model_config = ConfigDict(populate_by_name=True)
