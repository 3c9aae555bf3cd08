"""
Review model for MongoDB with Pydantic validation.

The invitation/response/report cycle of one reviewer on one manuscript is
driven through the transition methods on ``ReviewInDB``; each one checks its
guard before touching any field.
"""
from datetime import datetime, timedelta
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field
from bson import ObjectId

from editorial.core.error_handling import (
    AlreadyCompletedError,
    AlreadyRespondedError,
    PreconditionFailedError,
)
from .user import PyObjectId


DEFAULT_REVIEW_DAYS = 14


class ReviewStatus(str, Enum):
    PENDING_INVITATION = "Pending Invitation"
    INVITATION_SENT = "Invitation Sent"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class ReviewRecommendation(str, Enum):
    ACCEPT = "Accept"
    MINOR_REVISION = "Minor Revision"
    MAJOR_REVISION = "Major Revision"
    REJECT = "Reject"


class InvitationResponse(BaseModel):
    """Reviewer's answer to the invitation. ``responded`` is never unset."""
    responded: bool = False
    accepted: Optional[bool] = None
    response_date: Optional[datetime] = None
    decline_reason: Optional[str] = None


def _default_due_date() -> datetime:
    return datetime.utcnow() + timedelta(days=DEFAULT_REVIEW_DAYS)


class ReviewInDB(BaseModel):
    """Review model as stored in database."""
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    manuscript_id: PyObjectId
    reviewer_id: PyObjectId
    assigned_by: PyObjectId
    status: ReviewStatus = ReviewStatus.INVITATION_SENT.value
    invitation_sent_date: datetime = Field(default_factory=datetime.utcnow)
    invitation_response: InvitationResponse = Field(default_factory=InvitationResponse)
    due_date: datetime = Field(default_factory=_default_due_date)
    review_round: int = Field(default=1, ge=1)
    recommendation: Optional[ReviewRecommendation] = None
    confidential_comments: Optional[str] = Field(None, max_length=5000)
    author_comments: Optional[str] = Field(None, max_length=5000)
    submitted_date: Optional[datetime] = None
    reminders_sent: List[datetime] = Field(default_factory=list)
    last_reminder_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        use_enum_values = True
        json_encoders = {ObjectId: str}

    def _ensure_not_responded(self) -> None:
        if self.invitation_response.responded:
            raise AlreadyRespondedError(
                "You have already responded to this invitation",
                current_state=self.status
            )
        if self.status not in (ReviewStatus.PENDING_INVITATION, ReviewStatus.INVITATION_SENT):
            raise PreconditionFailedError(
                f"Cannot respond to a review in status '{self.status}'",
                current_state=self.status
            )

    def accept_invitation(self) -> None:
        """Accept the invitation; the review moves through Accepted into In Progress."""
        self._ensure_not_responded()
        now = datetime.utcnow()
        self.invitation_response = InvitationResponse(
            responded=True,
            accepted=True,
            response_date=now
        )
        # Accepted is transient: the reviewer starts work immediately
        self.status = ReviewStatus.IN_PROGRESS.value

    def decline_invitation(self, reason: Optional[str] = None) -> None:
        self._ensure_not_responded()
        self.invitation_response = InvitationResponse(
            responded=True,
            accepted=False,
            response_date=datetime.utcnow(),
            decline_reason=reason
        )
        self.status = ReviewStatus.DECLINED.value

    def submit(self, recommendation: ReviewRecommendation, confidential_comments: str,
               author_comments: str) -> None:
        if self.status == ReviewStatus.COMPLETED:
            raise AlreadyCompletedError(
                "This review has already been submitted",
                current_state=self.status
            )
        if self.status != ReviewStatus.IN_PROGRESS:
            raise PreconditionFailedError(
                "Review invitation must be accepted before submitting",
                current_state=self.status
            )
        self.recommendation = ReviewRecommendation(recommendation).value
        self.confidential_comments = confidential_comments
        self.author_comments = author_comments
        self.submitted_date = datetime.utcnow()
        self.status = ReviewStatus.COMPLETED.value

    def record_reminder(self) -> datetime:
        """Append a reminder timestamp. Permitted for any non-completed review."""
        if self.status == ReviewStatus.COMPLETED:
            raise PreconditionFailedError(
                "Review already completed",
                current_state=self.status
            )
        sent_at = datetime.utcnow()
        self.reminders_sent = [*self.reminders_sent, sent_at]
        self.last_reminder_date = sent_at
        return sent_at


class AssignReviewersRequest(BaseModel):
    reviewer_ids: List[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ReviewSubmission(BaseModel):
    recommendation: ReviewRecommendation
    confidential_comments: str = Field(..., max_length=5000)
    author_comments: str = Field(..., max_length=5000)
