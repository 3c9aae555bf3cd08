"""
Review service: reviewer assignment, invitation responses, report
submission and reminders.

State changes themselves live on ``ReviewInDB``; this service resolves the
records, checks who is acting and persists the result.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from editorial.core.config import Settings, settings
from editorial.core.database import get_database
from editorial.core.collections import Collections
from editorial.core.error_handling import (
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from editorial.core.logging_config import workflow_logger
from editorial.core.permissions import deny, has_any_role, require_roles
from editorial.models.manuscript import ManuscriptInDB
from editorial.models.notification import NotificationType
from editorial.models.review import ReviewInDB, ReviewRecommendation, ReviewStatus
from editorial.models.user import Role, UserInDB
from editorial.utils.workflow_utils import WorkflowUtils
from . import lifecycle
from .manuscript_service import ManuscriptService
from .notification_service import Notifier
from .timeline import add_timeline_event
from .user_service import UserService

logger = logging.getLogger(__name__)


class ReviewService:
    """Service for the review sub-state machine."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase = None,
        notifier: Notifier = None,
        manuscripts: ManuscriptService = None,
        user_service: UserService = None,
        config: Settings = None
    ):
        self.db = db
        self.notifier = notifier
        self.config = config or settings
        self.user_service = user_service or UserService(db)
        self.manuscripts = manuscripts or ManuscriptService(
            db, notifier, user_service=self.user_service, config=self.config
        )

    def _get_collection(self):
        """Get the reviews collection."""
        if self.db is None:
            self.db = get_database()
        return self.db[Collections.REVIEWS]

    async def get_or_404(self, review_id) -> ReviewInDB:
        object_id = WorkflowUtils.to_object_id(review_id, "review")
        review_doc = await self._get_collection().find_one({"_id": object_id})
        if review_doc is None:
            raise NotFoundError("Review not found", resource="review", resource_id=review_id)
        return ReviewInDB(**review_doc)

    async def save(self, review: ReviewInDB) -> ReviewInDB:
        await self._get_collection().replace_one({"_id": review.id}, review.dict(by_alias=True))
        return review

    async def _notify(self, recipient, notification_type: NotificationType, subject: str,
                      message: str, manuscript: ManuscriptInDB, review: ReviewInDB = None) -> None:
        if self.notifier is None or recipient is None:
            return
        await self.notifier.notify(
            recipient, notification_type, subject, message,
            related_manuscript=manuscript.id,
            related_review=review.id if review else None
        )

    async def _validate_reviewers(self, reviewer_ids: List[str]) -> List[UserInDB]:
        distinct = list(dict.fromkeys(str(rid) for rid in reviewer_ids))
        if len(distinct) < self.config.min_reviewers:
            raise ValidationError(
                f"At least {self.config.min_reviewers} distinct reviewers are required",
                field="reviewer_ids",
                value=len(distinct)
            )

        users = {str(user.id): user for user in await self.user_service.get_users_by_ids(distinct)}
        reviewers = []
        for rid in distinct:
            user = users.get(rid)
            if user is None or not user.is_active or not has_any_role(user, (Role.REVIEWER,)):
                raise ValidationError(
                    "Every assignee must be an active user with the reviewer role",
                    field="reviewer_ids",
                    value=rid
                )
            reviewers.append(user)
        return reviewers

    async def assign_reviewers(
        self,
        manuscript_id,
        reviewer_ids: List[str],
        actor: UserInDB,
        due_date: Optional[datetime] = None
    ) -> List[ReviewInDB]:
        """
        Invite reviewers to a manuscript.

        Reviewers already assigned to the manuscript are skipped; only the
        newly created reviews are returned.
        """
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "assign reviewers", "manuscript")
        reviewers = await self._validate_reviewers(reviewer_ids)

        manuscript = await self.manuscripts.get_or_404(manuscript_id)
        if lifecycle.is_terminal(manuscript):
            raise PreconditionFailedError(
                "Reviewers cannot be assigned to a closed manuscript",
                current_state=manuscript.status
            )

        existing = set(await self.manuscripts.reviewer_ids_for(manuscript))
        now = datetime.utcnow()
        due = due_date or now + timedelta(days=self.config.review_due_days)

        created: List[ReviewInDB] = []
        for reviewer in reviewers:
            if reviewer.id in existing:
                logger.info(f"Reviewer {reviewer.id} already assigned to {manuscript.manuscript_id}, skipping")
                continue
            review = ReviewInDB(
                manuscript_id=manuscript.id,
                reviewer_id=reviewer.id,
                assigned_by=actor.id,
                status=ReviewStatus.INVITATION_SENT.value,
                invitation_sent_date=now,
                due_date=due,
                review_round=manuscript.current_version
            )
            try:
                await self._get_collection().insert_one(review.dict(by_alias=True))
            except DuplicateKeyError:
                logger.info(f"Reviewer {reviewer.id} assigned concurrently to {manuscript.manuscript_id}, skipping")
                continue
            created.append(review)
            workflow_logger.log_review_event(
                manuscript.manuscript_id, str(review.id), "Invitation Sent",
                actor_id=str(actor.id), reviewer_id=str(reviewer.id)
            )

        if created:
            add_timeline_event(
                manuscript, "Reviewers Assigned", actor.id,
                f"{len(created)} reviewer(s) assigned"
            )
            await self.manuscripts.save(manuscript)

        for review in created:
            await self._notify(
                review.reviewer_id,
                NotificationType.REVIEW_INVITATION,
                f"Review invitation: {manuscript.manuscript_id}",
                f"You have been invited to review \"{manuscript.title}\". "
                f"The review is due by {review.due_date:%Y-%m-%d}.",
                manuscript,
                review
            )
        return created

    async def _load_own_review(self, review_id, actor: UserInDB, action: str) -> ReviewInDB:
        review = await self.get_or_404(review_id)
        if review.reviewer_id != actor.id:
            raise deny(actor, action, "review")
        return review

    async def accept_invitation(self, review_id, actor: UserInDB) -> ReviewInDB:
        review = await self._load_own_review(review_id, actor, "respond to review invitation")
        manuscript = await self.manuscripts.get_or_404(review.manuscript_id)

        review.accept_invitation()
        await self.save(review)
        workflow_logger.log_review_event(
            manuscript.manuscript_id, str(review.id), "Invitation Accepted", actor_id=str(actor.id)
        )

        await self._notify(
            manuscript.assigned_editor,
            NotificationType.REVIEW_INVITATION,
            f"Review invitation accepted: {manuscript.manuscript_id}",
            f"{actor.full_name} accepted the invitation to review \"{manuscript.title}\".",
            manuscript,
            review
        )
        return review

    async def decline_invitation(self, review_id, actor: UserInDB, reason: Optional[str] = None) -> ReviewInDB:
        review = await self._load_own_review(review_id, actor, "respond to review invitation")
        manuscript = await self.manuscripts.get_or_404(review.manuscript_id)

        review.decline_invitation(reason)
        await self.save(review)
        workflow_logger.log_review_event(
            manuscript.manuscript_id, str(review.id), "Invitation Declined",
            actor_id=str(actor.id), reason=reason
        )

        message = f"{actor.full_name} declined the invitation to review \"{manuscript.title}\"."
        if reason:
            message = f"{message} Reason: {reason}"
        await self._notify(
            manuscript.assigned_editor,
            NotificationType.REVIEW_INVITATION,
            f"Review invitation declined: {manuscript.manuscript_id}",
            message,
            manuscript,
            review
        )
        return review

    async def submit_review(
        self,
        review_id,
        actor: UserInDB,
        recommendation: Optional[str],
        confidential_comments: Optional[str],
        author_comments: Optional[str]
    ) -> ReviewInDB:
        review = await self._load_own_review(review_id, actor, "submit review")

        for name, value in (
            ("recommendation", recommendation),
            ("confidential_comments", confidential_comments),
            ("author_comments", author_comments),
        ):
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{name.replace('_', ' ').capitalize()} is required", field=name)
        try:
            recommendation = ReviewRecommendation(recommendation)
        except ValueError:
            raise ValidationError("Invalid recommendation", field="recommendation", value=recommendation)
        for name, value in (("confidential_comments", confidential_comments), ("author_comments", author_comments)):
            if len(value) > 5000:
                raise ValidationError(f"{name} cannot exceed 5000 characters", field=name, value=len(value))

        manuscript = await self.manuscripts.get_or_404(review.manuscript_id)
        review.submit(recommendation, confidential_comments, author_comments)
        await self.save(review)

        add_timeline_event(
            manuscript, "Review Completed", actor.id,
            f"Recommendation: {review.recommendation}"
        )
        await self.manuscripts.save(manuscript)
        workflow_logger.log_review_event(
            manuscript.manuscript_id, str(review.id), "Review Completed",
            actor_id=str(actor.id), recommendation=review.recommendation
        )

        await self._notify(
            manuscript.assigned_editor,
            NotificationType.REVIEW_COMPLETED,
            f"Review completed: {manuscript.manuscript_id}",
            f"A review of \"{manuscript.title}\" has been submitted with recommendation "
            f"{review.recommendation}.",
            manuscript,
            review
        )
        return review

    async def send_reminder(self, review_id, actor: UserInDB) -> ReviewInDB:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "send review reminders", "review")
        review = await self.get_or_404(review_id)
        manuscript = await self.manuscripts.get_or_404(review.manuscript_id)

        review.record_reminder()
        await self.save(review)
        workflow_logger.log_review_event(
            manuscript.manuscript_id, str(review.id), "Reminder Sent",
            actor_id=str(actor.id), reminders=len(review.reminders_sent)
        )

        await self._notify(
            review.reviewer_id,
            NotificationType.REVIEW_REMINDER,
            f"Review reminder: {manuscript.manuscript_id}",
            f"This is a reminder that your review of \"{manuscript.title}\" is due by "
            f"{review.due_date:%Y-%m-%d}.",
            manuscript,
            review
        )
        return review

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def get_review(self, review_id, actor: UserInDB) -> ReviewInDB:
        review = await self.get_or_404(review_id)
        if review.reviewer_id == actor.id or has_any_role(actor, (Role.EDITOR, Role.ADMIN)):
            return review
        raise deny(actor, "view review", "review")

    async def list_manuscript_reviews(self, manuscript_id, actor: UserInDB) -> List[ReviewInDB]:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "list manuscript reviews", "review")
        manuscript = await self.manuscripts.get_or_404(manuscript_id)
        cursor = self._get_collection().find({"manuscript_id": manuscript.id}).sort("invitation_sent_date", 1)
        return [ReviewInDB(**doc) async for doc in cursor]

    async def list_reviews_for_reviewer(self, actor: UserInDB, status: Optional[ReviewStatus] = None) -> List[ReviewInDB]:
        query = {"reviewer_id": actor.id}
        if status:
            query["status"] = ReviewStatus(status).value
        cursor = self._get_collection().find(query).sort("due_date", 1)
        return [ReviewInDB(**doc) async for doc in cursor]
