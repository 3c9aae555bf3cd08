"""
Collection names and the indexes each one needs.
"""
from typing import Dict, List
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import IndexModel, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
import logging

logger = logging.getLogger(__name__)


class Collections:
    USERS = "users"
    MANUSCRIPTS = "manuscripts"
    REVIEWS = "reviews"
    ISSUES = "issues"
    NOTIFICATIONS = "notifications"
    COUNTERS = "counters"


INDEXES: Dict[str, List[IndexModel]] = {
    Collections.USERS: [
        IndexModel([("email", ASCENDING)], unique=True, name="email_unique"),
        IndexModel([("roles", ASCENDING), ("is_active", ASCENDING)], name="roles_active"),
    ],
    Collections.MANUSCRIPTS: [
        IndexModel([("manuscript_id", ASCENDING)], unique=True, name="manuscript_id_unique"),
        # Unassigned DOIs are stored as null, so only string values are indexed
        IndexModel(
            [("doi", ASCENDING)],
            unique=True,
            partialFilterExpression={"doi": {"$type": "string"}},
            name="doi_unique"
        ),
        IndexModel([("status", ASCENDING)], name="status_asc"),
        IndexModel([("submitted_by", ASCENDING)], name="submitted_by_asc"),
        IndexModel([("assigned_editor", ASCENDING)], name="assigned_editor_asc"),
        IndexModel([("doi_metadata.deposit_status", ASCENDING)], name="deposit_status_asc"),
        IndexModel([("submission_date", DESCENDING)], name="submission_date_desc"),
    ],
    Collections.REVIEWS: [
        IndexModel([("manuscript_id", ASCENDING), ("reviewer_id", ASCENDING)],
                   unique=True, name="manuscript_reviewer_unique"),
        IndexModel([("reviewer_id", ASCENDING), ("status", ASCENDING)], name="reviewer_status"),
        IndexModel([("manuscript_id", ASCENDING), ("status", ASCENDING)], name="manuscript_status"),
    ],
    Collections.ISSUES: [
        IndexModel([("volume", ASCENDING), ("issue_number", ASCENDING)], unique=True, name="volume_issue_unique"),
        IndexModel([("is_published", ASCENDING), ("year", DESCENDING)], name="published_year"),
    ],
    Collections.NOTIFICATIONS: [
        IndexModel([("recipient", ASCENDING), ("created_at", DESCENDING)], name="recipient_created_at"),
    ],
}


async def setup_collections(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes above; collections themselves appear on first insert."""
    for name, indexes in INDEXES.items():
        try:
            created = await db[name].create_indexes(indexes)
        except PyMongoError as e:
            logger.error(f"Failed to create indexes on {name}: {e}")
            raise
        logger.info(f"{name}: ensured indexes {', '.join(created)}")
