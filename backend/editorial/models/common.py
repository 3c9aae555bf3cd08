"""
Response envelope models shared by every route.
"""
from math import ceil
from typing import List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field


DataT = TypeVar('DataT')


class APIResponse(BaseModel, Generic[DataT]):
    """Success envelope: ``{success, message, data}``."""
    success: bool = True
    message: str
    data: Optional[DataT] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Manuscript submitted successfully",
                "data": {"manuscript_id": "PUJMS-2026-00001", "status": "Submitted"}
            }
        }


class ErrorResponse(BaseModel):
    """Error envelope; ``error_code`` is the workflow error code."""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[dict] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "message": "Revisions can only be submitted when the editor has requested them",
                "error_code": "PRECONDITION_FAILED",
                "details": {"current_state": "Under Review"}
            }
        }


class PaginatedResponse(BaseModel, Generic[DataT]):
    """One page of a listing."""
    items: List[DataT]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    size: int = Field(..., ge=1)
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def create(cls, items: List[DataT], total: int, page: int, size: int) -> "PaginatedResponse[DataT]":
        pages = ceil(total / size) if total else 0
        return cls(
            items=items,
            total=total,
            page=page,
            size=size,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1
        )
