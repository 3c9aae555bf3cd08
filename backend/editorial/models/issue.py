"""
Issue model for MongoDB with Pydantic validation.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from bson import ObjectId

from .user import PyObjectId
from .manuscript import ManuscriptInDB


class IssueEntry(BaseModel):
    """A manuscript placed in an issue, with its page range."""
    manuscript_id: PyObjectId
    page_start: Optional[int] = Field(None, ge=1)
    page_end: Optional[int] = Field(None, ge=1)
    added_date: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        arbitrary_types_allowed = True
        json_encoders = {ObjectId: str}


class IssueCreate(BaseModel):
    volume: int = Field(..., ge=1)
    issue_number: int = Field(..., ge=1)
    title: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    year: Optional[int] = Field(None, ge=1900)


class IssueUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)


class IssueInDB(BaseModel):
    """Issue model as stored in database."""
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    volume: int = Field(..., ge=1)
    issue_number: int = Field(..., ge=1)
    title: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    manuscripts: List[IssueEntry] = Field(default_factory=list)
    is_published: bool = False
    published_date: Optional[datetime] = None
    created_by: PyObjectId
    year: int
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def issue_identifier(self) -> str:
        return f"Vol. {self.volume}, No. {self.issue_number} ({self.year})"

    def find_entry(self, manuscript_id) -> Optional[IssueEntry]:
        for entry in self.manuscripts:
            if entry.manuscript_id == ObjectId(manuscript_id):
                return entry
        return None

    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
        json_encoders = {ObjectId: str}


class AddManuscriptRequest(BaseModel):
    manuscript_id: str
    page_start: Optional[int] = Field(None, ge=1)
    page_end: Optional[int] = Field(None, ge=1)


class DoiResult(BaseModel):
    """Outcome of one DOI deposit attempt, reported back to the caller."""
    manuscript_id: str
    success: bool
    doi: Optional[str] = None
    error: Optional[str] = None
    attempt: Optional[int] = None


class PublishResult(BaseModel):
    issue: IssueInDB
    manuscripts: List[ManuscriptInDB] = Field(default_factory=list)
    doi_results: List[DoiResult] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True


class TableOfContentsEntry(BaseModel):
    manuscript_id: str
    title: str
    authors: List[str]
    doi: Optional[str] = None
    page_start: Optional[int] = None
    page_end: Optional[int] = None


class BulkRetryResult(BaseModel):
    """Tally returned by a bulk DOI retry."""
    processed: int = 0
    success: int = 0
    failed: int = 0
    results: List[DoiResult] = Field(default_factory=list)
