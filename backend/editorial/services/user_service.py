"""
Read access to journal users.

Users are maintained by the surrounding platform; the workflow only reads
them to resolve actors, editors and reviewers.
"""
from typing import Iterable, List, Optional
from datetime import datetime
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase

from editorial.models import UserCreate, UserInDB, Role
from editorial.core.database import get_database
from editorial.core.collections import Collections
from editorial.core.error_handling import ConflictError
import logging

logger = logging.getLogger(__name__)


class UserService:

    def __init__(self, db: AsyncIOMotorDatabase = None):
        self.db = db

    def _get_collection(self):
        if self.db is None:
            self.db = get_database()
        return self.db[Collections.USERS]

    async def create_user(self, user_data: UserCreate) -> UserInDB:
        """Register a user; emails are unique across the journal."""
        if await self.get_user_by_email(user_data.email):
            raise ConflictError("User with this email already exists")

        user = UserInDB(**user_data.dict(), created_at=datetime.utcnow())
        collection = self._get_collection()
        await collection.insert_one(user.dict(by_alias=True))

        logger.info(f"Created user: {user.email}")
        return user

    async def get_user_by_id(self, user_id) -> Optional[UserInDB]:
        """None for unknown or malformed ids."""
        try:
            object_id = ObjectId(user_id)
        except (InvalidId, TypeError):
            logger.debug(f"Malformed user id: {user_id}")
            return None

        user_doc = await self._get_collection().find_one({"_id": object_id})
        if user_doc:
            return UserInDB(**user_doc)
        return None

    async def get_user_by_email(self, email: str) -> Optional[UserInDB]:
        user_doc = await self._get_collection().find_one({"email": email})
        if user_doc:
            return UserInDB(**user_doc)
        return None

    async def get_active_users_by_role(self, role: Role) -> List[UserInDB]:
        """All active users holding the given role."""
        cursor = self._get_collection().find({"roles": Role(role).value, "is_active": True})
        return [UserInDB(**doc) async for doc in cursor]

    async def get_users_by_ids(self, user_ids: Iterable) -> List[UserInDB]:
        """Resolve ids to users; unknown or malformed ids are omitted."""
        object_ids = [ObjectId(uid) for uid in user_ids if ObjectId.is_valid(uid)]
        if not object_ids:
            return []
        cursor = self._get_collection().find({"_id": {"$in": object_ids}})
        return [UserInDB(**doc) async for doc in cursor]
