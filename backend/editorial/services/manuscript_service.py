"""
Manuscript service: submission, editorial routing, decisions, revisions
and deletion.

Every operation loads the manuscript, runs the lifecycle guard, mutates the
in-memory model and persists it with a single ``replace_one``. Notifications
are sent after the write, so a notifier failure reports an
``ExternalFailureError`` for a transition that has already been committed.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from editorial.core.config import Settings, settings
from editorial.core.database import get_database
from editorial.core.collections import Collections
from editorial.core.error_handling import (
    ExternalFailureError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from editorial.core.logging_config import workflow_logger
from editorial.core.permissions import deny, has_any_role, is_owner, require_roles
from editorial.models.manuscript import (
    EditorDecisionRecord,
    ManuscriptCreate,
    ManuscriptFile,
    ManuscriptInDB,
    ManuscriptStatus,
    RevisionComparison,
)
from editorial.models.notification import NotificationType
from editorial.models.user import Role, UserInDB
from editorial.utils.workflow_utils import WorkflowUtils
from . import lifecycle, revision_ledger
from .blob_store import BlobDownload, BlobStore
from .notification_service import Notifier, notify_each
from .timeline import add_timeline_event
from .user_service import UserService

logger = logging.getLogger(__name__)


class ManuscriptService:
    """Service for the manuscript editorial lifecycle."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase = None,
        notifier: Notifier = None,
        blob_store: Optional[BlobStore] = None,
        user_service: UserService = None,
        config: Settings = None
    ):
        self.db = db
        self.notifier = notifier
        self.blob_store = blob_store
        self.user_service = user_service or UserService(db)
        self.config = config or settings

    def _get_collection(self, name: str = Collections.MANUSCRIPTS):
        """Get a collection, the manuscripts collection by default."""
        if self.db is None:
            self.db = get_database()
        return self.db[name]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def next_manuscript_id(self, now: Optional[datetime] = None) -> str:
        """
        Allocate the next ``PREFIX-YYYY-NNNNN`` identifier.

        The per-year counter only ever increases, so identifiers are not
        reused after a manuscript is deleted.
        """
        year = WorkflowUtils.current_year(now)
        counter = await self._get_collection(Collections.COUNTERS).find_one_and_update(
            {"_id": f"manuscript-{year}"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return WorkflowUtils.format_manuscript_id(self.config.journal_prefix, year, counter["seq"])

    async def find_manuscript(self, manuscript_id) -> Optional[ManuscriptInDB]:
        """Look a manuscript up by database id or by its human-readable identifier."""
        if WorkflowUtils.is_manuscript_id(manuscript_id, self.config.journal_prefix):
            query = {"manuscript_id": manuscript_id}
        elif ObjectId.is_valid(manuscript_id):
            query = {"_id": ObjectId(manuscript_id)}
        else:
            return None

        manuscript_doc = await self._get_collection().find_one(query)
        if manuscript_doc:
            return ManuscriptInDB(**manuscript_doc)
        return None

    async def get_or_404(self, manuscript_id) -> ManuscriptInDB:
        manuscript = await self.find_manuscript(manuscript_id)
        if manuscript is None:
            raise NotFoundError("Manuscript not found", resource="manuscript", resource_id=manuscript_id)
        return manuscript

    async def save(self, manuscript: ManuscriptInDB) -> ManuscriptInDB:
        """Replace the stored document with the in-memory model."""
        manuscript.last_updated = datetime.utcnow()
        await self._get_collection().replace_one(
            {"_id": manuscript.id},
            manuscript.dict(by_alias=True)
        )
        return manuscript

    async def reviewer_ids_for(self, manuscript: ManuscriptInDB) -> List[ObjectId]:
        cursor = self._get_collection(Collections.REVIEWS).find(
            {"manuscript_id": manuscript.id},
            {"reviewer_id": 1}
        )
        return [doc["reviewer_id"] async for doc in cursor]

    async def _notify(self, recipient, notification_type: NotificationType, subject: str,
                      message: str, manuscript: ManuscriptInDB) -> None:
        if self.notifier is None or recipient is None:
            return
        await self.notifier.notify(recipient, notification_type, subject, message, manuscript.id)

    # ------------------------------------------------------------------
    # Submission and read side
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_submission(data: ManuscriptCreate) -> None:
        if not data.title or not data.title.strip():
            raise ValidationError("Title is required", field="title")
        if not data.abstract or not data.abstract.strip():
            raise ValidationError("Abstract is required", field="abstract")
        if not data.authors:
            raise ValidationError("At least one author is required", field="authors")
        corresponding = [a for a in data.authors if a.is_corresponding]
        if len(corresponding) > 1:
            raise ValidationError(
                "Only one corresponding author is allowed",
                field="authors",
                value=len(corresponding)
            )
        if not data.files:
            raise ValidationError("At least one manuscript file is required", field="files")

    async def create_manuscript(self, data: ManuscriptCreate, actor: UserInDB) -> ManuscriptInDB:
        """Register a new submission and notify the submitter and the editors."""
        self._validate_submission(data)

        now = datetime.utcnow()
        manuscript = ManuscriptInDB(
            manuscript_id=await self.next_manuscript_id(now),
            title=data.title.strip(),
            abstract=data.abstract.strip(),
            keywords=data.keywords,
            authors=data.authors,
            files=data.files,
            submitted_by=actor.id,
            submission_date=now,
            last_updated=now
        )
        add_timeline_event(manuscript, "Manuscript Submitted", actor.id, "Initial submission")

        await self._get_collection().insert_one(manuscript.dict(by_alias=True))
        logger.info(f"Created manuscript: {manuscript.manuscript_id}")
        workflow_logger.log_transition(
            manuscript.manuscript_id, "Manuscript Submitted", None, manuscript.status,
            actor_id=str(actor.id)
        )

        await self._notify(
            actor.id,
            NotificationType.SUBMISSION_CONFIRMATION,
            f"Submission received: {manuscript.manuscript_id}",
            f"Your manuscript \"{manuscript.title}\" has been received.",
            manuscript
        )
        if self.notifier is not None:
            editors = await self.user_service.get_active_users_by_role(Role.EDITOR)
            await notify_each(
                self.notifier,
                [editor.id for editor in editors],
                NotificationType.NEW_SUBMISSION,
                f"New submission: {manuscript.manuscript_id}",
                f"A new manuscript \"{manuscript.title}\" awaits editorial assignment.",
                manuscript.id
            )
        return manuscript

    async def get_manuscript(self, manuscript_id, actor: UserInDB) -> ManuscriptInDB:
        manuscript = await self.get_or_404(manuscript_id)
        reviewer_ids = await self.reviewer_ids_for(manuscript)
        if not lifecycle.can_view(manuscript, actor, reviewer_ids):
            raise deny(actor, "view manuscript", manuscript.manuscript_id)
        return manuscript

    async def list_manuscripts(
        self,
        actor: UserInDB,
        status: Optional[ManuscriptStatus] = None,
        page: int = 1,
        size: int = 20
    ) -> Tuple[List[ManuscriptInDB], int]:
        """Editors and admins see everything; other users see their own submissions."""
        query: Dict = {}
        if not has_any_role(actor, (Role.EDITOR, Role.ADMIN)):
            query["submitted_by"] = actor.id
        if status:
            query["status"] = ManuscriptStatus(status).value

        collection = self._get_collection()
        total = await collection.count_documents(query)
        cursor = (
            collection.find(query)
            .sort("submission_date", -1)
            .skip(WorkflowUtils.skip_for(page, size))
            .limit(size)
        )
        return [ManuscriptInDB(**doc) async for doc in cursor], total

    def generate_public_url(self, manuscript: ManuscriptInDB) -> str:
        return lifecycle.generate_public_url(manuscript, self.config.client_url)

    # ------------------------------------------------------------------
    # Editorial transitions
    # ------------------------------------------------------------------

    async def assign_editor(self, manuscript_id, editor_id, actor: UserInDB) -> ManuscriptInDB:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "assign editors", "manuscript")
        manuscript = await self.get_or_404(manuscript_id)
        editor = await self.user_service.get_user_by_id(editor_id)

        lifecycle.apply_editor_assignment(manuscript, editor, actor)
        await self.save(manuscript)

        await self._notify(
            editor.id,
            NotificationType.NEW_SUBMISSION,
            f"Manuscript assigned: {manuscript.manuscript_id}",
            f"You have been assigned as editor of \"{manuscript.title}\".",
            manuscript
        )
        return manuscript

    async def make_decision(self, manuscript_id, decision: str, comments: Optional[str],
                            actor: UserInDB) -> ManuscriptInDB:
        manuscript = await self.get_or_404(manuscript_id)
        if not (lifecycle.is_assigned_editor(manuscript, actor) or has_any_role(actor, (Role.ADMIN,))):
            raise deny(actor, "render a decision", manuscript.manuscript_id)

        record: EditorDecisionRecord = lifecycle.apply_decision(manuscript, decision, comments, actor)
        await self.save(manuscript)

        message = f"A decision has been made on \"{manuscript.title}\": {record.decision}."
        if comments:
            message = f"{message}\n\n{comments}"
        await self._notify(
            manuscript.submitted_by,
            NotificationType.FINAL_DECISION,
            f"Decision on {manuscript.manuscript_id}: {record.decision}",
            message,
            manuscript
        )
        return manuscript

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    async def submit_revision(
        self,
        manuscript_id,
        files: List[ManuscriptFile],
        actor: UserInDB,
        response_to_reviewers: Optional[str] = None,
        revision_notes: str = ""
    ) -> ManuscriptInDB:
        manuscript = await self.get_or_404(manuscript_id)
        if not is_owner(manuscript, actor):
            raise deny(actor, "submit a revision", manuscript.manuscript_id)
        lifecycle.ensure_revision_allowed(manuscript)

        revision = revision_ledger.append_revision(
            manuscript, files, actor.id,
            response_to_reviewers=response_to_reviewers,
            revision_notes=revision_notes
        )
        lifecycle.apply_revision_submitted(manuscript, revision.version, revision.revision_notes, actor)
        await self.save(manuscript)

        await self._notify(
            manuscript.assigned_editor,
            NotificationType.REVISION_REQUEST,
            f"Revision submitted: {manuscript.manuscript_id}",
            f"Version {revision.version} of \"{manuscript.title}\" has been submitted.",
            manuscript
        )
        return manuscript

    async def compare_revisions(self, manuscript_id, v1: int, v2: int, actor: UserInDB) -> RevisionComparison:
        manuscript = await self.get_manuscript(manuscript_id, actor)
        return revision_ledger.compare_revisions(manuscript, v1, v2)

    async def list_versions(self, manuscript_id, actor: UserInDB) -> List[Dict]:
        manuscript = await self.get_manuscript(manuscript_id, actor)
        return revision_ledger.list_versions(manuscript)

    # ------------------------------------------------------------------
    # Files and deletion
    # ------------------------------------------------------------------

    @staticmethod
    def stored_file_keys(manuscript: ManuscriptInDB) -> List[str]:
        """Every blob key referenced by the submission and its revisions."""
        keys = [f.file_id for f in manuscript.files]
        for revision in manuscript.revisions:
            keys.extend(f.file_id for f in revision.files)
            if revision.response_to_reviewers:
                keys.append(revision.response_to_reviewers)
        return keys

    @staticmethod
    def find_file(manuscript: ManuscriptInDB, file_id: str) -> Optional[ManuscriptFile]:
        for f in manuscript.files:
            if f.file_id == file_id:
                return f
        for revision in manuscript.revisions:
            for f in revision.files:
                if f.file_id == file_id:
                    return f
            if revision.response_to_reviewers == file_id:
                return ManuscriptFile(
                    file_id=file_id,
                    filename=file_id.rsplit("/", 1)[-1],
                    original_name=file_id.rsplit("/", 1)[-1],
                    file_type="response",
                    upload_date=revision.submitted_at
                )
        return None

    async def download_file(self, manuscript_id, file_id: str, actor: UserInDB) -> Tuple[ManuscriptFile, BlobDownload]:
        manuscript = await self.get_manuscript(manuscript_id, actor)
        stored = self.find_file(manuscript, file_id)
        if stored is None:
            raise NotFoundError("File not found", resource="file", resource_id=file_id)
        if self.blob_store is None:
            raise ExternalFailureError("File storage is not configured", service="blob_store")
        download = await self.blob_store.open_stream(file_id)
        return stored, download

    async def delete_manuscript(self, manuscript_id, actor: UserInDB) -> None:
        """
        Delete a manuscript and everything hanging off it.

        The cascade (blobs, reviews, issue entries, the record itself) is a
        sequence of independent writes; a crash part-way leaves the earlier
        steps applied.
        """
        manuscript = await self.get_or_404(manuscript_id)
        if not (is_owner(manuscript, actor) or has_any_role(actor, (Role.ADMIN,))):
            raise deny(actor, "delete manuscript", manuscript.manuscript_id)
        if manuscript.status == ManuscriptStatus.PUBLISHED:
            raise PreconditionFailedError(
                "Published manuscripts cannot be deleted",
                current_state=manuscript.status
            )

        if self.blob_store is not None:
            for key in self.stored_file_keys(manuscript):
                try:
                    await self.blob_store.delete_file(key)
                except Exception as e:
                    logger.warning(f"Failed to delete stored file {key} of {manuscript.manuscript_id}: {e}")

        reviews = await self._get_collection(Collections.REVIEWS).delete_many({"manuscript_id": manuscript.id})
        await self._get_collection(Collections.ISSUES).update_many(
            {"is_published": False, "manuscripts.manuscript_id": manuscript.id},
            {"$pull": {"manuscripts": {"manuscript_id": manuscript.id}}}
        )
        await self._get_collection().delete_one({"_id": manuscript.id})

        logger.info(
            f"Deleted manuscript {manuscript.manuscript_id} "
            f"({reviews.deleted_count} review(s) removed)"
        )
        workflow_logger.log_transition(
            manuscript.manuscript_id, "Manuscript Deleted", manuscript.status, None,
            actor_id=str(actor.id)
        )
