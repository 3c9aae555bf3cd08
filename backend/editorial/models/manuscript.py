"""
Manuscript model for MongoDB with Pydantic validation.

A manuscript document embeds its revision ledger, audit timeline and DOI
deposit state, so every lifecycle transition is a single-document replace.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, validator
from bson import ObjectId
from .user import PyObjectId


class ManuscriptStatus(str, Enum):
    """Editorial status of a manuscript."""
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    REVISIONS_REQUIRED = "Revisions Required"
    REVISED_SUBMITTED = "Revised Submitted"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    PUBLISHED = "Published"


class EditorialDecision(str, Enum):
    """Decision kinds an editor can render."""
    ACCEPT = "Accept"
    REJECT = "Reject"
    REVISIONS_REQUIRED = "Revisions Required"


class FileType(str, Enum):
    MANUSCRIPT = "manuscript"
    SUPPLEMENTARY = "supplementary"
    REVISION = "revision"
    RESPONSE_TO_REVIEWERS = "response"


class DepositStatus(str, Enum):
    """DOI deposit lifecycle."""
    NOT_ASSIGNED = "not_assigned"
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class Author(BaseModel):
    """Manuscript author as listed on the submission."""
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    affiliation: str = Field(..., min_length=1)
    orcid: Optional[str] = None
    is_corresponding: bool = False

    @validator('email')
    def normalize_email(cls, v):
        return v.strip().lower()


class ManuscriptFile(BaseModel):
    """Reference to a file held by the blob store."""
    file_id: str = Field(..., min_length=1, description="Blob store key")
    filename: str = Field(..., min_length=1)
    original_name: str = Field(..., min_length=1)
    file_type: FileType = FileType.MANUSCRIPT.value
    size: Optional[int] = Field(None, ge=0)
    upload_date: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True


class Revision(BaseModel):
    """Immutable snapshot of a resubmission."""
    version: int = Field(..., ge=2)
    files: List[ManuscriptFile]
    response_to_reviewers: Optional[str] = Field(None, description="Blob store key of the response document")
    revision_notes: str = Field(default="", max_length=2000)
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    submitted_by: PyObjectId

    class Config:
        arbitrary_types_allowed = True
        json_encoders = {ObjectId: str}


class TimelineEntry(BaseModel):
    """Audit timeline entry."""
    event: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    performed_by: Optional[PyObjectId] = None
    details: Optional[str] = None

    class Config:
        arbitrary_types_allowed = True
        json_encoders = {ObjectId: str}


class EditorDecisionRecord(BaseModel):
    decision: EditorialDecision
    comments: Optional[str] = None
    decided_at: datetime = Field(default_factory=datetime.utcnow)
    decided_by: PyObjectId

    class Config:
        arbitrary_types_allowed = True
        use_enum_values = True
        json_encoders = {ObjectId: str}


class DepositAttempt(BaseModel):
    """One entry of the DOI deposit history."""
    attempt_number: int = Field(..., ge=1)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    status: DepositStatus
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None

    class Config:
        use_enum_values = True


class DoiMetadata(BaseModel):
    """Embedded DOI deposit state."""
    deposit_status: DepositStatus = DepositStatus.NOT_ASSIGNED.value
    deposit_attempts: int = Field(default=0, ge=0)
    last_deposit_attempt: Optional[datetime] = None
    deposit_error: Optional[str] = None
    deposit_history: List[DepositAttempt] = Field(default_factory=list)

    class Config:
        use_enum_values = True


class ManuscriptCreate(BaseModel):
    """Manuscript submission payload. Files are already held by the blob store."""
    title: str = Field(..., max_length=500)
    abstract: str = Field(..., max_length=5000)
    keywords: List[str] = Field(default_factory=list)
    authors: List[Author] = Field(default_factory=list)
    files: List[ManuscriptFile] = Field(default_factory=list)

    @validator('keywords')
    def strip_keywords(cls, v):
        return [k.strip() for k in v if k and k.strip()]


class ManuscriptInDB(BaseModel):
    """Manuscript model as stored in database."""
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    manuscript_id: str = Field(..., description="Human-readable identifier, PREFIX-YYYY-NNNNN")
    title: str
    abstract: str
    keywords: List[str] = Field(default_factory=list)
    authors: List[Author]
    submitted_by: PyObjectId
    status: ManuscriptStatus = ManuscriptStatus.SUBMITTED.value
    files: List[ManuscriptFile] = Field(default_factory=list)
    revisions: List[Revision] = Field(default_factory=list)
    current_version: int = Field(default=1, ge=1)
    assigned_editor: Optional[PyObjectId] = None
    editor_decision: Optional[EditorDecisionRecord] = None
    published_in: Optional[PyObjectId] = None
    doi: Optional[str] = None
    doi_metadata: DoiMetadata = Field(default_factory=DoiMetadata)
    public_url: Optional[str] = None
    published_date: Optional[datetime] = None

    # Timestamps
    submission_date: datetime = Field(default_factory=datetime.utcnow)
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    timeline: List[TimelineEntry] = Field(default_factory=list)

    @property
    def corresponding_author(self) -> Optional[Author]:
        for author in self.authors:
            if author.is_corresponding:
                return author
        return self.authors[0] if self.authors else None

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        use_enum_values = True
        json_encoders = {ObjectId: str}


class DecisionRequest(BaseModel):
    decision: EditorialDecision
    comments: Optional[str] = Field(None, max_length=5000)


class AssignEditorRequest(BaseModel):
    editor_id: str


class RevisionRequest(BaseModel):
    files: List[ManuscriptFile] = Field(default_factory=list)
    response_to_reviewers: Optional[str] = None
    revision_notes: str = Field(default="", max_length=2000)


class FileChange(BaseModel):
    """A file present in both compared versions whose size or upload date differs."""
    original_name: str
    before: ManuscriptFile
    after: ManuscriptFile


class ComparisonSummary(BaseModel):
    added: int
    removed: int
    modified: int


class RevisionComparison(BaseModel):
    """Result of comparing two versions of a manuscript's file set."""
    manuscript_id: str
    from_version: int
    to_version: int
    added: List[ManuscriptFile] = Field(default_factory=list)
    removed: List[ManuscriptFile] = Field(default_factory=list)
    modified: List[FileChange] = Field(default_factory=list)
    summary: ComparisonSummary
