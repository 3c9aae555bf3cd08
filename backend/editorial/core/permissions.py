"""
Role and ownership predicates used by the workflow services.
"""
from typing import Any, Iterable

from bson import ObjectId

from editorial.core.error_handling import UnauthorizedError
from editorial.core.logging_config import security_logger
from editorial.models.user import Role, UserInDB


def has_any_role(user: UserInDB, required: Iterable[Role]) -> bool:
    """True when the user holds at least one of the required roles."""
    held = {Role(role) for role in user.roles}
    return any(Role(role) in held for role in required)


def is_owner(resource: Any, user: UserInDB) -> bool:
    """True when the user submitted the resource."""
    owner = getattr(resource, "submitted_by", None)
    return owner is not None and ObjectId(owner) == ObjectId(user.id)


def require_roles(user: UserInDB, required: Iterable[Role], action: str, resource: str = None) -> None:
    """Raise UnauthorizedError unless the user holds one of the roles."""
    required = tuple(required)
    if not has_any_role(user, required):
        security_logger.log_unauthorized_access(str(user.id), resource or action, action)
        raise UnauthorizedError(
            f"Not authorized to {action}",
            action=action,
            details={"required_roles": [Role(r).value for r in required]}
        )


def deny(user: UserInDB, action: str, resource: str = None) -> UnauthorizedError:
    """Build (and audit) an UnauthorizedError for a failed ownership check."""
    security_logger.log_unauthorized_access(str(user.id), resource or action, action)
    return UnauthorizedError(f"Not authorized to {action}", action=action)
