"""
Issue API endpoints.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query

from editorial.core.dependencies import get_current_user, get_services
from editorial.core.response_formatter import ResponseFormatter
from editorial.models import IssueCreate, IssueUpdate, UserInDB
from editorial.models.issue import AddManuscriptRequest
from editorial.services.container import EditorialServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["Issues"])


@router.post("")
async def create_issue(
    data: IssueCreate,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    issue = await services.issues.create_issue(data, current_user)
    return ResponseFormatter.created(issue, message="Issue created successfully")


@router.get("")
async def list_issues(
    published: Optional[bool] = Query(None),
    year: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    services: EditorialServices = Depends(get_services)
):
    items, total = await services.issues.list_issues(published, year, page, size)
    return ResponseFormatter.paginated(items, total, page, size)


@router.get("/{issue_id}")
async def get_issue(
    issue_id: str,
    services: EditorialServices = Depends(get_services)
):
    issue = await services.issues.get_issue(issue_id)
    return ResponseFormatter.success(issue, message="Issue retrieved successfully")


@router.get("/{issue_id}/toc")
async def table_of_contents(
    issue_id: str,
    services: EditorialServices = Depends(get_services)
):
    contents = await services.issues.table_of_contents(issue_id)
    return ResponseFormatter.success(contents, message="Table of contents retrieved successfully")


@router.put("/{issue_id}")
async def update_issue(
    issue_id: str,
    changes: IssueUpdate,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    issue = await services.issues.update_issue(issue_id, changes, current_user)
    return ResponseFormatter.success(issue, message="Issue updated successfully")


@router.delete("/{issue_id}")
async def delete_issue(
    issue_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    await services.issues.delete_issue(issue_id, current_user)
    return ResponseFormatter.success(message="Issue deleted successfully")


@router.post("/{issue_id}/manuscripts")
async def add_manuscript(
    issue_id: str,
    request: AddManuscriptRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    issue = await services.issues.add_manuscript(
        issue_id,
        request.manuscript_id,
        current_user,
        page_start=request.page_start,
        page_end=request.page_end
    )
    return ResponseFormatter.success(issue, message="Manuscript added to issue")


@router.delete("/{issue_id}/manuscripts/{manuscript_id}")
async def remove_manuscript(
    issue_id: str,
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    issue = await services.issues.remove_manuscript(issue_id, manuscript_id, current_user)
    return ResponseFormatter.success(issue, message="Manuscript removed from issue")


@router.put("/{issue_id}/publish")
async def publish_issue(
    issue_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    result = await services.issues.publish_issue(issue_id, current_user)
    return ResponseFormatter.success(result, message="Issue published successfully")
