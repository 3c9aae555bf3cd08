"""
Envelope used by every API response: ``{success, message, data}`` on success
and ``{success, message, error_code, details}`` on failure.
"""
from typing import Any, Dict, List, Optional
from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from editorial.core.error_handling import ApplicationError, ErrorSeverity, status_code_for
from editorial.models import APIResponse, ErrorResponse, PaginatedResponse


def encode(data: Any) -> Any:
    """JSON-compatible rendering of models, ObjectIds and datetimes."""
    return jsonable_encoder(data, custom_encoder={ObjectId: str})


def _respond(body: Any, status_code: int, headers: Optional[Dict[str, str]]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=encode(body), headers=headers or {})


class ResponseFormatter:

    @staticmethod
    def success(
        data: Any = None,
        message: str = "Operation completed successfully",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None
    ) -> JSONResponse:
        body = APIResponse[Any](success=True, message=message, data=encode(data))
        return _respond(body, status_code, headers)

    @staticmethod
    def created(data: Any, message: str = "Resource created successfully",
                headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        return ResponseFormatter.success(data, message=message, status_code=201, headers=headers)

    @staticmethod
    def paginated(
        items: List[Any],
        total: int,
        page: int,
        size: int,
        message: str = "Data retrieved successfully"
    ) -> JSONResponse:
        """One page of ``items`` plus the totals a client needs to page further."""
        page_body = PaginatedResponse.create(items=encode(items), total=total, page=page, size=size)
        body = APIResponse[PaginatedResponse[Any]](success=True, message=message, data=page_body)
        return _respond(body, 200, None)

    @staticmethod
    def error(
        message: str,
        error_code: str = "ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> JSONResponse:
        body = ErrorResponse(message=message, error_code=error_code, details=details)
        return _respond(body, status_code, headers)

    @staticmethod
    def from_application_error(error: ApplicationError) -> JSONResponse:
        """
        Render a workflow error with the HTTP status of its category.

        The error id is echoed in the body and in ``X-Error-ID`` so a client
        report can be matched to the server log line.
        """
        details = {} if error.severity == ErrorSeverity.CRITICAL else dict(error.details)
        details.update(error_id=error.error_id, category=error.category.value)
        return ResponseFormatter.error(
            message=error.message,
            error_code=error.error_code,
            status_code=status_code_for(error),
            details=details,
            headers={"X-Error-ID": error.error_id}
        )
