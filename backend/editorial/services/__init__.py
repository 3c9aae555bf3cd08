"""Editorial workflow services."""

from .container import EditorialServices
from .doi_registrar import CrossrefDoiRegistrar, MockDoiRegistrar, resolve_doi, validate_doi
from .doi_service import DoiService
from .issue_service import IssueService
from .manuscript_service import ManuscriptService
from .notification_service import NotificationService
from .review_service import ReviewService
from .user_service import UserService

__all__ = [
    "EditorialServices",
    "CrossrefDoiRegistrar",
    "MockDoiRegistrar",
    "resolve_doi",
    "validate_doi",
    "DoiService",
    "IssueService",
    "ManuscriptService",
    "NotificationService",
    "ReviewService",
    "UserService",
]
