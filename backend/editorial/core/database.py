"""
MongoDB connection held for the lifetime of the application.
"""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from editorial.core.config import settings

logger = logging.getLogger(__name__)

SERVER_SELECTION_TIMEOUT_MS = 5000


class Database:
    client: Optional[AsyncIOMotorClient] = None
    database: Optional[AsyncIOMotorDatabase] = None


db = Database()


async def connect_to_mongo():
    """Open the client and fail fast when the server is unreachable."""
    logger.info(f"Connecting to MongoDB at {settings.mongodb_host}, database {settings.mongodb_database}")
    db.client = AsyncIOMotorClient(settings.mongodb_url, serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS)
    db.database = db.client[settings.mongodb_database]

    if not await ping_database():
        raise RuntimeError(f"MongoDB at {settings.mongodb_host} is not reachable")
    logger.info("Connected to MongoDB")


async def ping_database() -> bool:
    if db.client is None:
        return False
    try:
        await db.client.admin.command('ping')
    except PyMongoError as e:
        logger.error(f"MongoDB ping failed: {e}")
        return False
    return True


async def close_mongo_connection():
    if db.client:
        db.client.close()
        db.client = None
        db.database = None
    logger.info("MongoDB connection closed")


def get_database() -> AsyncIOMotorDatabase:
    """Database handle used by services constructed without an explicit one."""
    return db.database
