"""
Review API endpoints.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query

from editorial.core.dependencies import get_current_user, get_services
from editorial.core.response_formatter import ResponseFormatter
from editorial.models import ReviewStatus, UserInDB
from editorial.models.review import AssignReviewersRequest, DeclineRequest, ReviewSubmission
from editorial.services.container import EditorialServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.post("/manuscripts/{manuscript_id}")
async def assign_reviewers(
    manuscript_id: str,
    request: AssignReviewersRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    reviews = await services.reviews.assign_reviewers(
        manuscript_id, request.reviewer_ids, current_user, due_date=request.due_date
    )
    return ResponseFormatter.created(reviews, message=f"{len(reviews)} reviewer(s) assigned")


@router.get("/manuscripts/{manuscript_id}")
async def list_manuscript_reviews(
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    reviews = await services.reviews.list_manuscript_reviews(manuscript_id, current_user)
    return ResponseFormatter.success(reviews, message="Reviews retrieved successfully")


@router.get("/my-reviews")
async def my_reviews(
    status: Optional[ReviewStatus] = Query(None),
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    reviews = await services.reviews.list_reviews_for_reviewer(current_user, status)
    return ResponseFormatter.success(reviews, message="Reviews retrieved successfully")


@router.get("/{review_id}")
async def get_review(
    review_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    review = await services.reviews.get_review(review_id, current_user)
    return ResponseFormatter.success(review, message="Review retrieved successfully")


@router.put("/{review_id}/accept")
async def accept_invitation(
    review_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    review = await services.reviews.accept_invitation(review_id, current_user)
    return ResponseFormatter.success(review, message="Review invitation accepted")


@router.put("/{review_id}/decline")
async def decline_invitation(
    review_id: str,
    request: DeclineRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    review = await services.reviews.decline_invitation(review_id, current_user, reason=request.reason)
    return ResponseFormatter.success(review, message="Review invitation declined")


@router.put("/{review_id}/submit")
async def submit_review(
    review_id: str,
    request: ReviewSubmission,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    review = await services.reviews.submit_review(
        review_id,
        current_user,
        request.recommendation,
        request.confidential_comments,
        request.author_comments
    )
    return ResponseFormatter.success(review, message="Review submitted successfully")


@router.post("/{review_id}/remind")
async def send_reminder(
    review_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    review = await services.reviews.send_reminder(review_id, current_user)
    return ResponseFormatter.success(review, message="Reminder sent successfully")
