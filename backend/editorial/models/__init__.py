"""Data models."""

from .user import PyObjectId, Role, UserCreate, UserInDB

from .manuscript import (
    Author,
    ComparisonSummary,
    DecisionRequest,
    DepositAttempt,
    DepositStatus,
    DoiMetadata,
    EditorDecisionRecord,
    EditorialDecision,
    FileChange,
    FileType,
    ManuscriptCreate,
    ManuscriptFile,
    ManuscriptInDB,
    ManuscriptStatus,
    Revision,
    RevisionComparison,
    TimelineEntry,
)

from .review import (
    InvitationResponse,
    ReviewInDB,
    ReviewRecommendation,
    ReviewStatus,
)

from .issue import (
    BulkRetryResult,
    DoiResult,
    IssueCreate,
    IssueEntry,
    IssueInDB,
    IssueUpdate,
    PublishResult,
    TableOfContentsEntry,
)

from .notification import NotificationInDB, NotificationType

from .common import (
    APIResponse,
    ErrorResponse,
    PaginatedResponse,
)

__all__ = [
    # User models
    "PyObjectId",
    "Role",
    "UserCreate",
    "UserInDB",

    # Manuscript models
    "Author",
    "ComparisonSummary",
    "DecisionRequest",
    "DepositAttempt",
    "DepositStatus",
    "DoiMetadata",
    "EditorDecisionRecord",
    "EditorialDecision",
    "FileChange",
    "FileType",
    "ManuscriptCreate",
    "ManuscriptFile",
    "ManuscriptInDB",
    "ManuscriptStatus",
    "Revision",
    "RevisionComparison",
    "TimelineEntry",

    # Review models
    "InvitationResponse",
    "ReviewInDB",
    "ReviewRecommendation",
    "ReviewStatus",

    # Issue models
    "BulkRetryResult",
    "DoiResult",
    "IssueCreate",
    "IssueEntry",
    "IssueInDB",
    "IssueUpdate",
    "PublishResult",
    "TableOfContentsEntry",

    # Notification models
    "NotificationInDB",
    "NotificationType",

    # Common models
    "APIResponse",
    "ErrorResponse",
    "PaginatedResponse",
]
