"""
Issue service: assembling accepted manuscripts into journal issues and
publishing them.

Publication touches one document per member manuscript and then the issue
itself; the writes are independent, so a crash part-way leaves some members
published while the issue is still open. Re-running publish picks up the
remaining Accepted members because published ones are skipped.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from editorial.core.config import Settings, settings
from editorial.core.database import get_database
from editorial.core.collections import Collections
from editorial.core.error_handling import (
    AlreadyPublishedError,
    ConflictError,
    IssueLockedError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from editorial.core.logging_config import LoggingContext
from editorial.core.permissions import require_roles
from editorial.models.issue import (
    DoiResult,
    IssueCreate,
    IssueEntry,
    IssueInDB,
    IssueUpdate,
    PublishResult,
    TableOfContentsEntry,
)
from editorial.models.manuscript import ManuscriptInDB, ManuscriptStatus
from editorial.models.notification import NotificationType
from editorial.models.user import Role, UserInDB
from editorial.utils.workflow_utils import WorkflowUtils
from . import lifecycle
from .doi_service import DoiService
from .manuscript_service import ManuscriptService
from .notification_service import Notifier

logger = logging.getLogger(__name__)


class IssueService:
    """Service for journal issues."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase = None,
        notifier: Notifier = None,
        manuscripts: ManuscriptService = None,
        doi_service: DoiService = None,
        config: Settings = None
    ):
        self.db = db
        self.notifier = notifier
        self.config = config or settings
        self.manuscripts = manuscripts or ManuscriptService(db, notifier, config=self.config)
        self.doi_service = doi_service or DoiService(db, manuscripts=self.manuscripts, config=self.config)

    def _get_collection(self):
        """Get the issues collection."""
        if self.db is None:
            self.db = get_database()
        return self.db[Collections.ISSUES]

    async def get_or_404(self, issue_id) -> IssueInDB:
        object_id = WorkflowUtils.to_object_id(issue_id, "issue")
        issue_doc = await self._get_collection().find_one({"_id": object_id})
        if issue_doc is None:
            raise NotFoundError("Issue not found", resource="issue", resource_id=issue_id)
        return IssueInDB(**issue_doc)

    async def save(self, issue: IssueInDB) -> IssueInDB:
        await self._get_collection().replace_one({"_id": issue.id}, issue.dict(by_alias=True))
        return issue

    @staticmethod
    def _ensure_unlocked(issue: IssueInDB) -> None:
        if issue.is_published:
            raise IssueLockedError(f"{issue.issue_identifier} is published and can no longer be modified")

    # ------------------------------------------------------------------
    # Issue records
    # ------------------------------------------------------------------

    async def create_issue(self, data: IssueCreate, actor: UserInDB) -> IssueInDB:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "create issues", "issue")
        collection = self._get_collection()
        duplicate = await collection.find_one(
            {"volume": data.volume, "issue_number": data.issue_number},
            {"_id": 1}
        )
        if duplicate:
            raise ConflictError(f"Volume {data.volume}, issue {data.issue_number} already exists")

        issue = IssueInDB(
            volume=data.volume,
            issue_number=data.issue_number,
            title=data.title,
            description=data.description,
            year=data.year or WorkflowUtils.current_year(),
            created_by=actor.id
        )
        try:
            await collection.insert_one(issue.dict(by_alias=True))
        except DuplicateKeyError:
            raise ConflictError(f"Volume {data.volume}, issue {data.issue_number} already exists")

        logger.info(f"Created issue {issue.issue_identifier}")
        return issue

    async def get_issue(self, issue_id) -> IssueInDB:
        return await self.get_or_404(issue_id)

    async def list_issues(
        self,
        published: Optional[bool] = None,
        year: Optional[int] = None,
        page: int = 1,
        size: int = 20
    ) -> Tuple[List[IssueInDB], int]:
        query: Dict[str, Any] = {}
        if published is not None:
            query["is_published"] = published
        if year is not None:
            query["year"] = year

        collection = self._get_collection()
        total = await collection.count_documents(query)
        cursor = (
            collection.find(query)
            .sort([("volume", -1), ("issue_number", -1)])
            .skip(WorkflowUtils.skip_for(page, size))
            .limit(size)
        )
        return [IssueInDB(**doc) async for doc in cursor], total

    async def update_issue(self, issue_id, changes: IssueUpdate, actor: UserInDB) -> IssueInDB:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "update issues", "issue")
        issue = await self.get_or_404(issue_id)
        self._ensure_unlocked(issue)

        for field_name, value in changes.dict(exclude_unset=True).items():
            setattr(issue, field_name, value)
        return await self.save(issue)

    async def delete_issue(self, issue_id, actor: UserInDB) -> None:
        require_roles(actor, (Role.ADMIN,), "delete issues", "issue")
        issue = await self.get_or_404(issue_id)
        self._ensure_unlocked(issue)

        await self.db[Collections.MANUSCRIPTS].update_many(
            {"published_in": issue.id},
            {"$set": {"published_in": None, "last_updated": datetime.utcnow()}}
        )
        await self._get_collection().delete_one({"_id": issue.id})
        logger.info(f"Deleted issue {issue.issue_identifier}")

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def add_manuscript(
        self,
        issue_id,
        manuscript_id,
        actor: UserInDB,
        page_start: Optional[int] = None,
        page_end: Optional[int] = None
    ) -> IssueInDB:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "add manuscripts to issues", "issue")
        issue = await self.get_or_404(issue_id)
        self._ensure_unlocked(issue)

        manuscript = await self.manuscripts.get_or_404(manuscript_id)
        if manuscript.status != ManuscriptStatus.ACCEPTED:
            raise PreconditionFailedError(
                "Only accepted manuscripts can be added to an issue",
                current_state=manuscript.status
            )
        if issue.find_entry(manuscript.id) is not None:
            raise ConflictError(f"{manuscript.manuscript_id} is already in {issue.issue_identifier}")
        if manuscript.published_in is not None and manuscript.published_in != issue.id:
            raise ConflictError(f"{manuscript.manuscript_id} is already placed in another issue")
        if page_start is not None and page_end is not None and page_end < page_start:
            raise ValidationError(
                "page_end cannot be before page_start",
                field="page_end",
                value=page_end
            )

        issue.manuscripts.append(IssueEntry(
            manuscript_id=manuscript.id,
            page_start=page_start,
            page_end=page_end,
            added_date=datetime.utcnow()
        ))
        await self.save(issue)

        manuscript.published_in = issue.id
        await self.manuscripts.save(manuscript)
        logger.info(f"Added {manuscript.manuscript_id} to {issue.issue_identifier}")
        return issue

    async def remove_manuscript(self, issue_id, manuscript_id, actor: UserInDB) -> IssueInDB:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "remove manuscripts from issues", "issue")
        issue = await self.get_or_404(issue_id)
        self._ensure_unlocked(issue)

        manuscript = await self.manuscripts.get_or_404(manuscript_id)
        entry = issue.find_entry(manuscript.id)
        if entry is None:
            raise NotFoundError(
                f"{manuscript.manuscript_id} is not in {issue.issue_identifier}",
                resource="issue_entry",
                resource_id=manuscript.manuscript_id
            )

        issue.manuscripts = [e for e in issue.manuscripts if e.manuscript_id != manuscript.id]
        await self.save(issue)

        if manuscript.published_in == issue.id:
            manuscript.published_in = None
            await self.manuscripts.save(manuscript)
        logger.info(f"Removed {manuscript.manuscript_id} from {issue.issue_identifier}")
        return issue

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------

    async def publish_issue(self, issue_id, actor: UserInDB) -> PublishResult:
        """
        Publish every accepted member and then the issue itself.

        Members without a DOI get a deposit attempt first; a failed deposit
        is recorded on the manuscript and reported in ``doi_results`` but does
        not hold back publication.
        """
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "publish issues", "issue")
        issue = await self.get_or_404(issue_id)
        if issue.is_published:
            raise AlreadyPublishedError(f"{issue.issue_identifier} is already published")

        published: List[ManuscriptInDB] = []
        doi_results: List[DoiResult] = []
        with LoggingContext("publish_issue", user_id=str(actor.id), issue=issue.issue_identifier):
            for entry in issue.manuscripts:
                manuscript = await self.manuscripts.find_manuscript(entry.manuscript_id)
                if manuscript is None:
                    logger.warning(f"Issue {issue.issue_identifier} references missing manuscript {entry.manuscript_id}")
                    continue
                if manuscript.status != ManuscriptStatus.ACCEPTED:
                    continue

                manuscript.published_in = issue.id
                manuscript.public_url = self.manuscripts.generate_public_url(manuscript)
                if not manuscript.doi:
                    doi_results.append(await self.doi_service.attempt_deposit(manuscript, issue, actor))

                lifecycle.apply_publication(manuscript, issue.issue_identifier, actor)
                await self.manuscripts.save(manuscript)
                published.append(manuscript)

            issue.is_published = True
            issue.published_date = datetime.utcnow()
            await self.save(issue)

        for manuscript in published:
            await self._notify_published(manuscript, issue)

        logger.info(f"Published {issue.issue_identifier} with {len(published)} manuscript(s)")
        return PublishResult(issue=issue, manuscripts=published, doi_results=doi_results)

    async def _notify_published(self, manuscript: ManuscriptInDB, issue: IssueInDB) -> None:
        if self.notifier is None:
            return
        message = f"\"{manuscript.title}\" has been published in {issue.issue_identifier}."
        if manuscript.doi:
            message = f"{message} DOI: {manuscript.doi}"
        await self.notifier.notify(
            manuscript.submitted_by,
            NotificationType.PUBLICATION_NOTICE,
            f"Published: {manuscript.manuscript_id}",
            message,
            manuscript.id
        )

    async def table_of_contents(self, issue_id) -> List[TableOfContentsEntry]:
        issue = await self.get_or_404(issue_id)
        contents = []
        for entry in issue.manuscripts:
            manuscript = await self.manuscripts.find_manuscript(entry.manuscript_id)
            if manuscript is None:
                continue
            contents.append(TableOfContentsEntry(
                manuscript_id=manuscript.manuscript_id,
                title=manuscript.title,
                authors=[f"{a.first_name} {a.last_name}" for a in manuscript.authors],
                doi=manuscript.doi,
                page_start=entry.page_start,
                page_end=entry.page_end
            ))
        return contents
