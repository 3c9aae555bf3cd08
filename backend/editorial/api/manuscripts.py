"""
Manuscript API endpoints: submission, editorial routing, decisions,
revisions and file access.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from editorial.core.dependencies import get_current_user, get_services
from editorial.core.response_formatter import ResponseFormatter
from editorial.models import ManuscriptCreate, ManuscriptStatus, UserInDB
from editorial.models.manuscript import AssignEditorRequest, DecisionRequest, RevisionRequest
from editorial.services.container import EditorialServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/manuscripts", tags=["Manuscripts"])


@router.post("")
async def create_manuscript(
    data: ManuscriptCreate,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    """Submit a new manuscript whose files are already in blob storage."""
    manuscript = await services.manuscripts.create_manuscript(data, current_user)
    return ResponseFormatter.created(manuscript, message="Manuscript submitted successfully")


@router.get("")
async def list_manuscripts(
    status: Optional[ManuscriptStatus] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    items, total = await services.manuscripts.list_manuscripts(current_user, status, page, size)
    return ResponseFormatter.paginated(items, total, page, size)


@router.get("/{manuscript_id}")
async def get_manuscript(
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    manuscript = await services.manuscripts.get_manuscript(manuscript_id, current_user)
    return ResponseFormatter.success(manuscript, message="Manuscript retrieved successfully")


@router.put("/{manuscript_id}/assign-editor")
async def assign_editor(
    manuscript_id: str,
    request: AssignEditorRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    manuscript = await services.manuscripts.assign_editor(manuscript_id, request.editor_id, current_user)
    return ResponseFormatter.success(manuscript, message="Editor assigned successfully")


@router.put("/{manuscript_id}/decision")
async def make_decision(
    manuscript_id: str,
    request: DecisionRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    manuscript = await services.manuscripts.make_decision(
        manuscript_id, request.decision, request.comments, current_user
    )
    return ResponseFormatter.success(manuscript, message="Decision recorded successfully")


@router.post("/{manuscript_id}/revisions")
async def submit_revision(
    manuscript_id: str,
    request: RevisionRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    manuscript = await services.manuscripts.submit_revision(
        manuscript_id,
        request.files,
        current_user,
        response_to_reviewers=request.response_to_reviewers,
        revision_notes=request.revision_notes
    )
    return ResponseFormatter.created(manuscript, message="Revision submitted successfully")


@router.get("/{manuscript_id}/revisions")
async def list_versions(
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    versions = await services.manuscripts.list_versions(manuscript_id, current_user)
    return ResponseFormatter.success(versions, message="Versions retrieved successfully")


@router.get("/{manuscript_id}/revisions/compare")
async def compare_revisions(
    manuscript_id: str,
    v1: int = Query(..., ge=1),
    v2: int = Query(..., ge=1),
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    comparison = await services.manuscripts.compare_revisions(manuscript_id, v1, v2, current_user)
    return ResponseFormatter.success(comparison, message="Versions compared successfully")


@router.get("/{manuscript_id}/files/{file_id:path}")
async def download_file(
    manuscript_id: str,
    file_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    """Stream a stored file of the manuscript or one of its revisions."""
    stored, download = await services.manuscripts.download_file(manuscript_id, file_id, current_user)
    headers = {"Content-Disposition": f'attachment; filename="{stored.original_name}"'}
    if download.content_length is not None:
        headers["Content-Length"] = str(download.content_length)
    return StreamingResponse(download.chunks, media_type=download.content_type, headers=headers)


@router.delete("/{manuscript_id}")
async def delete_manuscript(
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    await services.manuscripts.delete_manuscript(manuscript_id, current_user)
    return ResponseFormatter.success(message="Manuscript deleted successfully")
