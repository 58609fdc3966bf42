"""
Credential store for the managed accounts.
Psychology: The store owns every rule about accounts - format, uniqueness, hashing.
Intention: Routes stay thin; password hashes never leave this module.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from lookup_api.auth.passwords import PasswordHasher
from lookup_api.config import RoleModel
from lookup_api.exceptions import NotFound, ValidationFailed
from lookup_api.models.account import (
    ALL_FEATURES,
    AccountCreate,
    AccountStatus,
    AccountUpdate,
    filter_features,
    is_valid_email,
    is_valid_name,
    is_valid_password,
    is_valid_username,
)

logger = logging.getLogger(__name__)

PASSWORD_PROJECTION = {"password": 0}


def utcnow() -> datetime:
    """Naive UTC, the way the database hands datetimes back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_object_id(account_id: str) -> Optional[ObjectId]:
    if not isinstance(account_id, str) or not ObjectId.is_valid(account_id):
        return None
    return ObjectId(account_id)


class AccountStore:
    def __init__(self, collection: Any, hasher: PasswordHasher, roles: RoleModel):
        self.collection = collection
        self.hasher = hasher
        self.roles = roles

    @property
    def not_found_message(self) -> str:
        return f"{self.roles.managed_label} not found"

    async def _require(self, account_id: str, projection: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        oid = parse_object_id(account_id)
        doc = await self.collection.find_one({"_id": oid}, projection) if oid else None
        if doc is None:
            raise NotFound(self.not_found_message)
        return doc

    # -- authentication -------------------------------------------------------

    async def authenticate(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """Return the active account matching the credentials, else None."""
        doc = await self.collection.find_one({"username": str(username), "status": AccountStatus.ACTIVE.value})
        if doc is None:
            await self.hasher.verify_async(password, "")
            return None
        if not await self.hasher.verify_async(password, doc.get("password", "")):
            return None

        last_login = utcnow()
        await self.collection.update_one({"_id": doc["_id"]}, {"$set": {"lastLogin": last_login}})
        doc["lastLogin"] = last_login
        doc.pop("password", None)
        return doc

    # -- queries ----------------------------------------------------------------

    async def list(self) -> List[Dict[str, Any]]:
        cursor = self.collection.find({}, PASSWORD_PROJECTION, sort=[("createdAt", DESCENDING), ("_id", DESCENDING)])
        return await cursor.to_list(None)

    async def get(self, account_id: str) -> Dict[str, Any]:
        return await self._require(account_id, PASSWORD_PROJECTION)

    async def count(self, status: Optional[AccountStatus] = None) -> int:
        query = {"status": status.value} if status else {}
        return await self.collection.count_documents(query)

    async def features_for(self, account_id: str) -> List[str]:
        """Effective features; anything missing means every feature."""
        oid = parse_object_id(account_id)
        if oid is None:
            return list(ALL_FEATURES)
        doc = await self.collection.find_one({"_id": oid}, {"features": 1})
        if not doc or not doc.get("features"):
            return list(ALL_FEATURES)
        return list(doc["features"])

    # -- mutations --------------------------------------------------------------

    async def create(self, payload: AccountCreate) -> Dict[str, Any]:
        username, password = payload.username, payload.password
        name, email = payload.name, payload.email

        if not username or not password or not name or not email:
            raise ValidationFailed("All fields are required")
        if not is_valid_username(username):
            raise ValidationFailed("Username must be 3-50 alphanumeric characters or underscores")
        if not is_valid_password(password):
            raise ValidationFailed("Password must be 6-100 characters")
        if not is_valid_email(email):
            raise ValidationFailed("Invalid email format")
        if not is_valid_name(name):
            raise ValidationFailed("Name must be 2-100 characters")

        existing = await self.collection.find_one({"$or": [{"username": username}, {"email": email}]})
        if existing is not None:
            raise ValidationFailed("Username or email already exists")

        doc: Dict[str, Any] = {
            "username": username,
            "password": await self.hasher.hash_async(password),
            "name": name,
            "email": email,
            "status": AccountStatus.INACTIVE.value if payload.status == "inactive" else AccountStatus.ACTIVE.value,
            "createdAt": utcnow(),
        }
        if self.roles.supports_features:
            doc["features"] = list(ALL_FEATURES)

        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise ValidationFailed("Username or email already exists")

        doc["_id"] = result.inserted_id
        doc.pop("password")
        logger.info(f"{self.roles.managed_label} created: {username}")
        return doc

    async def update(self, account_id: str, payload: AccountUpdate) -> Dict[str, Any]:
        doc = await self._require(account_id)
        changes = payload.supplied()

        if any(not isinstance(value, str) for value in changes.values()):
            raise ValidationFailed("Invalid input format")
        changes = {key: value.strip() for key, value in changes.items()}
        changes = {key: value for key, value in changes.items() if value}

        updates: Dict[str, Any] = {}

        username = changes.get("username")
        if username and username != doc["username"]:
            if not is_valid_username(username):
                raise ValidationFailed("Username must be 3-50 alphanumeric characters or underscores")
            if await self.collection.find_one({"username": username}) is not None:
                raise ValidationFailed("Username already exists")
            updates["username"] = username

        email = changes.get("email")
        if email and email != doc.get("email"):
            if not is_valid_email(email):
                raise ValidationFailed("Invalid email format")
            if await self.collection.find_one({"email": email}) is not None:
                raise ValidationFailed("Email already exists")
            updates["email"] = email

        if "name" in changes:
            if not is_valid_name(changes["name"]):
                raise ValidationFailed("Name must be 2-100 characters")
            updates["name"] = changes["name"]

        if "status" in changes:
            if changes["status"] not in (AccountStatus.ACTIVE.value, AccountStatus.INACTIVE.value):
                raise ValidationFailed("Status must be active or inactive")
            updates["status"] = changes["status"]

        if "password" in changes:
            if not is_valid_password(changes["password"]):
                raise ValidationFailed("Password must be 6-100 characters")
            updates["password"] = await self.hasher.hash_async(changes["password"])

        if updates:
            try:
                await self.collection.update_one({"_id": doc["_id"]}, {"$set": updates})
            except DuplicateKeyError:
                raise ValidationFailed("Username or email already exists")
            doc.update(updates)

        doc.pop("password", None)
        return doc

    async def delete(self, account_id: str) -> None:
        oid = parse_object_id(account_id)
        result = await self.collection.delete_one({"_id": oid}) if oid else None
        if result is None or result.deleted_count == 0:
            raise NotFound(self.not_found_message)

    async def set_features(self, account_id: str, features: List[Any]) -> Dict[str, Any]:
        doc = await self._require(account_id, PASSWORD_PROJECTION)
        selected = filter_features(features)
        await self.collection.update_one({"_id": doc["_id"]}, {"$set": {"features": selected}})
        doc["features"] = selected
        return doc
