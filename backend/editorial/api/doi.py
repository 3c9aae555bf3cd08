"""
DOI deposit administration endpoints.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from editorial.core.dependencies import get_current_user, get_services
from editorial.core.response_formatter import ResponseFormatter
from editorial.models import DepositStatus, UserInDB
from editorial.services.container import EditorialServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doi/deposits", tags=["DOI Deposits"])


class ManualDoiRequest(BaseModel):
    doi: str


@router.get("")
async def list_deposits(
    status: Optional[DepositStatus] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    items, total = await services.doi.list_deposits(current_user, status, page, size)
    return ResponseFormatter.paginated(items, total, page, size)


@router.post("/bulk-retry")
async def bulk_retry(
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    result = await services.doi.bulk_retry(current_user)
    return ResponseFormatter.success(
        result,
        message=f"Processed {result.processed} deposit(s): {result.success} succeeded, {result.failed} failed"
    )


@router.get("/{manuscript_id}")
async def get_deposit(
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    detail = await services.doi.get_deposit(manuscript_id, current_user)
    return ResponseFormatter.success(detail, message="Deposit retrieved successfully")


@router.post("/{manuscript_id}/retry")
async def retry_deposit(
    manuscript_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    result = await services.doi.retry_deposit(manuscript_id, current_user)
    message = "DOI deposited successfully" if result.success else "DOI deposit failed"
    return ResponseFormatter.success(result, message=message)


@router.post("/{manuscript_id}/assign")
async def assign_doi(
    manuscript_id: str,
    request: ManualDoiRequest,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    result = await services.doi.assign_manual(manuscript_id, request.doi, current_user)
    return ResponseFormatter.success(result, message="DOI assigned successfully")
