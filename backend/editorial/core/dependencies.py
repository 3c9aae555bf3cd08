"""
FastAPI dependencies for resolving the acting user and the workflow services.

Authentication happens upstream; the gateway forwards the authenticated user
id in the ``X-User-Id`` header.
"""
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status

from editorial.core.logging_config import set_request_context
from editorial.models import UserInDB
from editorial.services.container import EditorialServices
import logging

logger = logging.getLogger(__name__)


def get_services(request: Request) -> EditorialServices:
    """Services assembled once in the application lifespan."""
    return request.app.state.services


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    services: EditorialServices = Depends(get_services)
) -> UserInDB:
    """
    Resolve the acting user from the gateway header.

    Raises:
        HTTPException: 401 if the header is missing, unknown or the user is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if not x_user_id:
        logger.warning("Request without X-User-Id header")
        raise credentials_exception

    user = await services.users.get_user_by_id(x_user_id)
    if user is None:
        logger.warning(f"User not found for ID: {x_user_id}")
        raise credentials_exception
    if not user.is_active:
        logger.warning(f"Inactive user attempted access: {user.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Inactive user account"
        )

    set_request_context(user_id=str(user.id))
    return user
