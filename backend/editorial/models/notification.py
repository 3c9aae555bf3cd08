"""
Notification model for MongoDB with Pydantic validation.
"""
from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field
from bson import ObjectId

from .user import PyObjectId


class NotificationType(str, Enum):
    SUBMISSION_CONFIRMATION = "submission_confirmation"
    REVIEW_INVITATION = "review_invitation"
    REVIEW_REMINDER = "review_reminder"
    REVISION_REQUEST = "revision_request"
    FINAL_DECISION = "final_decision"
    NEW_SUBMISSION = "new_submission"
    REVIEW_COMPLETED = "review_completed"
    PUBLICATION_NOTICE = "publication_notice"


class NotificationInDB(BaseModel):
    """Notification model as stored in database."""
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    recipient: PyObjectId
    type: NotificationType
    subject: str
    message: str
    related_manuscript: Optional[PyObjectId] = None
    related_review: Optional[PyObjectId] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        use_enum_values = True
        json_encoders = {ObjectId: str}
