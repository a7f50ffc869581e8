"""MongoDB persistence for users and watchlists."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import DESCENDING

from cosmic_watch.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES = {
    "risk_threshold": "all",
    "notifications_enabled": True,
}


class Database:
    """MongoDB connection manager. Patient and reliable."""

    client: Optional[AsyncIOMotorClient] = None

    @classmethod
    async def connect(cls):
        """Connect and make sure the unique indexes exist."""
        settings = get_settings()
        cls.client = AsyncIOMotorClient(settings.mongodb_url)
        logger.info("Database connection established.")

        db = cls.get_database()
        await db.users.create_index("email", unique=True)
        await db.watchlists.create_index([("user_id", 1), ("asteroid_id", 1)], unique=True)

    @classmethod
    async def disconnect(cls):
        """Close the connection gracefully."""
        if cls.client:
            cls.client.close()
            cls.client = None
            logger.info("Database connection closed.")

    @classmethod
    def get_database(cls):
        if not cls.client:
            raise RuntimeError("Database not connected.")
        return cls.client[get_settings().database_name]


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _with_id(doc: Optional[dict]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class UserRepository:
    """Observers and what they looked at."""

    def __init__(self, db):
        self.collection = db.users

    async def find_by_email(self, email: str) -> Optional[dict]:
        """Emails are stored lowercased."""
        return _with_id(await self.collection.find_one({"email": email.lower()}))

    async def find_by_id(self, user_id: str) -> Optional[dict]:
        """None for unknown or malformed ids."""
        oid = _object_id(user_id)
        if oid is None:
            return None
        return _with_id(await self.collection.find_one({"_id": oid}))

    async def create(self, name: str, email: str, password_hash: str) -> dict:
        """Insert a new user with default preferences."""
        doc = {
            "name": name,
            "email": email.lower(),
            "password_hash": password_hash,
            "interests": [],
            "preferences": dict(DEFAULT_PREFERENCES),
            "viewed_asteroids": [],
            "created_at": datetime.utcnow(),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _with_id(doc)

    async def update_profile(
        self,
        user_id: str,
        interests: Optional[List[str]] = None,
        preferences: Optional[dict] = None,
    ) -> Optional[dict]:
        """Replace interests; merge preferences over what is stored."""
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        changes: Dict[str, Any] = {}
        if interests is not None:
            changes["interests"] = interests
        if preferences:
            changes["preferences"] = {**user.get("preferences", {}), **preferences}
        if changes:
            await self.collection.update_one({"_id": ObjectId(user_id)}, {"$set": changes})
        return {**user, **changes}

    async def record_viewed(self, user_id: str, asteroid_id: str) -> None:
        """Append to the user's viewing history."""
        oid = _object_id(user_id)
        if oid is None:
            return
        await self.collection.update_one(
            {"_id": oid},
            {"$push": {"viewed_asteroids": {"asteroid_id": asteroid_id, "viewed_at": datetime.utcnow()}}},
        )


class WatchlistRepository:
    """Asteroids each user keeps an eye on."""

    def __init__(self, db):
        self.collection = db.watchlists

    async def list_for_user(self, user_id: str) -> List[dict]:
        """Newest additions first."""
        cursor = self.collection.find({"user_id": user_id}).sort("added_at", DESCENDING)
        return [_with_id(doc) for doc in await cursor.to_list(length=None)]

    async def find_for_user(self, user_id: str, asteroid_id: str) -> Optional[dict]:
        """The user's entry for one asteroid, if any."""
        return _with_id(await self.collection.find_one({"user_id": user_id, "asteroid_id": asteroid_id}))

    async def get(self, item_id: str) -> Optional[dict]:
        """Any user's item by id. Ownership is checked by the caller."""
        oid = _object_id(item_id)
        if oid is None:
            return None
        return _with_id(await self.collection.find_one({"_id": oid}))

    async def create(
        self,
        user_id: str,
        asteroid_id: str,
        asteroid_name: str,
        asteroid_data: dict,
        notes: Optional[str] = None,
    ) -> dict:
        """Insert a watchlist item. The unique index rejects repeats."""
        doc = {
            "user_id": user_id,
            "asteroid_id": asteroid_id,
            "asteroid_name": asteroid_name,
            "asteroid_data": asteroid_data,
            "notes": notes,
            "added_at": datetime.utcnow(),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _with_id(doc)

    async def update_notes(self, item_id: str, notes: Optional[str]) -> Optional[dict]:
        """Replace the notes and return the updated item."""
        oid = _object_id(item_id)
        if oid is None:
            return None
        await self.collection.update_one({"_id": oid}, {"$set": {"notes": notes}})
        return await self.get(item_id)

    async def delete(self, item_id: str) -> bool:
        """True when something was removed."""
        oid = _object_id(item_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0


def get_user_repository() -> UserRepository:
    return UserRepository(Database.get_database())


def get_watchlist_repository() -> WatchlistRepository:
    return WatchlistRepository(Database.get_database())
