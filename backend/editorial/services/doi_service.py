"""
DOI deposit service.

    not_assigned -> processing -> {success, failed};  failed -> processing

Every attempt, whatever triggered it (issue publication, a single retry, the
bulk retry job or a manual assignment), appends exactly one entry to
``doi_metadata.deposit_history`` and bumps ``deposit_attempts``, so the two
always agree. Registrar failures are recorded on the manuscript and reported
in the returned ``DoiResult``; they are not raised.
"""
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from editorial.core.config import BULK_RETRY_CAP, Settings, settings
from editorial.core.database import get_database
from editorial.core.collections import Collections
from editorial.core.error_handling import (
    ApplicationError,
    ConflictError,
    PreconditionFailedError,
    ValidationError,
)
from editorial.core.logging_config import LoggingContext, workflow_logger
from editorial.core.permissions import require_roles
from editorial.models.issue import BulkRetryResult, DoiResult, IssueInDB
from editorial.models.manuscript import (
    DepositAttempt,
    DepositStatus,
    ManuscriptInDB,
    ManuscriptStatus,
)
from editorial.models.user import Role, UserInDB
from editorial.utils.workflow_utils import WorkflowUtils
from . import lifecycle
from .doi_registrar import DoiRegistrar, MockDoiRegistrar, build_deposit_metadata, resolve_doi, validate_doi
from .manuscript_service import ManuscriptService

logger = logging.getLogger(__name__)

RETRYABLE_MANUSCRIPT_STATUSES = (ManuscriptStatus.ACCEPTED, ManuscriptStatus.PUBLISHED)


def record_attempt(
    manuscript: ManuscriptInDB,
    status: DepositStatus,
    doi: Optional[str] = None,
    error: Optional[str] = None,
    response: Optional[Dict[str, Any]] = None,
    client_url: Optional[str] = None
) -> DepositAttempt:
    """Append one deposit attempt to the manuscript's DOI state."""
    status = DepositStatus(status)
    meta = manuscript.doi_metadata
    now = datetime.utcnow()

    meta.deposit_attempts += 1
    meta.last_deposit_attempt = now
    meta.deposit_status = status.value
    if error:
        meta.deposit_error = error

    attempt = DepositAttempt(
        attempt_number=meta.deposit_attempts,
        timestamp=now,
        status=status.value,
        error=error,
        response=response
    )
    meta.deposit_history.append(attempt)

    if status == DepositStatus.SUCCESS and doi:
        manuscript.doi = doi
        manuscript.public_url = lifecycle.generate_public_url(manuscript, client_url)
    return attempt


class DoiService:
    """Service for the DOI deposit sub-state machine."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase = None,
        registrar: DoiRegistrar = None,
        manuscripts: ManuscriptService = None,
        config: Settings = None
    ):
        self.db = db
        self.registrar = registrar or MockDoiRegistrar()
        self.config = config or settings
        self.manuscripts = manuscripts or ManuscriptService(db, config=self.config)

    def _get_collection(self, name: str = Collections.MANUSCRIPTS):
        if self.db is None:
            self.db = get_database()
        return self.db[name]

    async def doi_taken_by_other(self, doi: str, manuscript: ManuscriptInDB) -> bool:
        other = await self._get_collection().find_one(
            {"doi": doi, "_id": {"$ne": manuscript.id}},
            {"_id": 1}
        )
        return other is not None

    async def _issue_for(self, manuscript: ManuscriptInDB) -> Optional[IssueInDB]:
        if manuscript.published_in is None:
            return None
        issue_doc = await self._get_collection(Collections.ISSUES).find_one({"_id": manuscript.published_in})
        return IssueInDB(**issue_doc) if issue_doc else None

    async def attempt_deposit(
        self,
        manuscript: ManuscriptInDB,
        issue: Optional[IssueInDB] = None,
        actor: Optional[UserInDB] = None
    ) -> DoiResult:
        """
        Register a DOI for the manuscript and persist the outcome.

        Once the manuscript is marked ``processing`` every failure, including
        database errors, ends as a recorded failed attempt so the deposit can
        be retried later.
        """
        manuscript.doi_metadata.deposit_status = DepositStatus.PROCESSING.value
        await self.manuscripts.save(manuscript)

        doi = None
        error = None
        try:
            if not manuscript.public_url:
                manuscript.public_url = self.manuscripts.generate_public_url(manuscript)
            doi = await self.registrar.assign_doi(build_deposit_metadata(manuscript, issue))
            if doi and await self.doi_taken_by_other(doi, manuscript):
                error = f"DOI {doi} is already assigned to another manuscript"
                doi = None
        except ApplicationError as e:
            doi, error = None, e.message
        except Exception as e:
            logger.error(f"Deposit for {manuscript.manuscript_id} failed: {e}", exc_info=True)
            doi, error = None, str(e)

        previous_doi = manuscript.doi
        if doi:
            attempt = record_attempt(
                manuscript, DepositStatus.SUCCESS, doi=doi,
                response={"doi": doi, "registrar": type(self.registrar).__name__},
                client_url=self.config.client_url
            )
        else:
            attempt = record_attempt(manuscript, DepositStatus.FAILED, error=error)

        try:
            await self.manuscripts.save(manuscript)
        except PyMongoError as e:
            if not doi:
                raise
            # e.g. a concurrent deposit claimed the same DOI under doi_unique
            logger.error(f"Could not store DOI {doi} for {manuscript.manuscript_id}: {e}")
            error = f"Could not store DOI {doi}: {e}"
            doi = None
            manuscript.doi = previous_doi
            attempt.status = DepositStatus.FAILED.value
            attempt.error = error
            attempt.response = None
            manuscript.doi_metadata.deposit_status = DepositStatus.FAILED.value
            manuscript.doi_metadata.deposit_error = error
            await self.manuscripts.save(manuscript)

        workflow_logger.log_deposit_attempt(
            manuscript.manuscript_id, attempt.attempt_number, attempt.status, doi=doi, error=error
        )
        return DoiResult(
            manuscript_id=manuscript.manuscript_id,
            success=doi is not None,
            doi=doi,
            error=error,
            attempt=attempt.attempt_number
        )

    async def retry_deposit(self, manuscript_id, actor: UserInDB) -> DoiResult:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "retry DOI deposits", "doi")
        manuscript = await self.manuscripts.get_or_404(manuscript_id)

        if manuscript.status not in RETRYABLE_MANUSCRIPT_STATUSES:
            raise PreconditionFailedError(
                "DOI deposits are only possible for accepted or published manuscripts",
                current_state=manuscript.status
            )
        deposit_status = manuscript.doi_metadata.deposit_status
        if deposit_status == DepositStatus.SUCCESS:
            raise ConflictError(f"Manuscript already has DOI {manuscript.doi}")
        if deposit_status not in (DepositStatus.FAILED, DepositStatus.NOT_ASSIGNED):
            raise PreconditionFailedError(
                "A deposit is already in progress for this manuscript",
                current_state=deposit_status
            )

        issue = await self._issue_for(manuscript)
        return await self.attempt_deposit(manuscript, issue, actor)

    async def bulk_retry(self, actor: Optional[UserInDB] = None) -> BulkRetryResult:
        """
        Retry failed deposits, oldest attempt first, one at a time.

        Capped at ``bulk_retry_limit`` manuscripts per call. A failure on one
        manuscript is tallied and the batch carries on.
        """
        if actor is not None:
            require_roles(actor, (Role.ADMIN,), "bulk retry DOI deposits", "doi")

        started = time.perf_counter()
        query = {
            "doi_metadata.deposit_status": DepositStatus.FAILED.value,
            "status": {"$in": [s.value for s in RETRYABLE_MANUSCRIPT_STATUSES]},
        }
        cursor = (
            self._get_collection()
            .find(query)
            .sort("doi_metadata.last_deposit_attempt", 1)
            .limit(min(self.config.bulk_retry_limit, BULK_RETRY_CAP))
        )
        candidates = [ManuscriptInDB(**doc) async for doc in cursor]

        result = BulkRetryResult()
        with LoggingContext("doi_bulk_retry", user_id=str(actor.id) if actor else None):
            for manuscript in candidates:
                result.processed += 1
                try:
                    issue = await self._issue_for(manuscript)
                    outcome = await self.attempt_deposit(manuscript, issue, actor)
                except Exception as e:
                    logger.error(f"Bulk retry failed for {manuscript.manuscript_id}: {e}")
                    outcome = DoiResult(manuscript_id=manuscript.manuscript_id, success=False, error=str(e))

                if outcome.success:
                    result.success += 1
                else:
                    result.failed += 1
                result.results.append(outcome)

        workflow_logger.log_bulk_retry(
            result.processed, result.success, result.failed,
            (time.perf_counter() - started) * 1000
        )
        return result

    async def assign_manual(self, manuscript_id, doi: str, actor: UserInDB) -> DoiResult:
        """Record a DOI registered outside the system."""
        require_roles(actor, (Role.ADMIN,), "assign DOIs manually", "doi")
        doi = (doi or "").strip()
        if not validate_doi(doi):
            raise ValidationError("Invalid DOI format", field="doi", value=doi)

        manuscript = await self.manuscripts.get_or_404(manuscript_id)
        if await self.doi_taken_by_other(doi, manuscript):
            raise ConflictError(f"DOI {doi} is already assigned to another manuscript")

        attempt = record_attempt(
            manuscript, DepositStatus.SUCCESS, doi=doi,
            response={"doi": doi, "manual": True, "assigned_by": str(actor.id)},
            client_url=self.config.client_url
        )
        await self.manuscripts.save(manuscript)

        workflow_logger.log_deposit_attempt(
            manuscript.manuscript_id, attempt.attempt_number, attempt.status, doi=doi
        )
        return DoiResult(
            manuscript_id=manuscript.manuscript_id,
            success=True,
            doi=doi,
            attempt=attempt.attempt_number
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @staticmethod
    def deposit_summary(manuscript: ManuscriptInDB) -> Dict[str, Any]:
        meta = manuscript.doi_metadata
        return {
            "id": str(manuscript.id),
            "manuscript_id": manuscript.manuscript_id,
            "title": manuscript.title,
            "status": manuscript.status,
            "doi": manuscript.doi,
            "doi_url": resolve_doi(manuscript.doi) if manuscript.doi else None,
            "public_url": manuscript.public_url,
            "deposit_status": meta.deposit_status,
            "deposit_attempts": meta.deposit_attempts,
            "last_deposit_attempt": meta.last_deposit_attempt,
            "deposit_error": meta.deposit_error,
        }

    async def list_deposits(
        self,
        actor: UserInDB,
        status: Optional[DepositStatus] = None,
        page: int = 1,
        size: int = 20
    ) -> Tuple[List[Dict[str, Any]], int]:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "list DOI deposits", "doi")
        query: Dict[str, Any] = {"status": {"$in": [s.value for s in RETRYABLE_MANUSCRIPT_STATUSES]}}
        if status:
            query["doi_metadata.deposit_status"] = DepositStatus(status).value

        collection = self._get_collection()
        total = await collection.count_documents(query)
        cursor = (
            collection.find(query)
            .sort("doi_metadata.last_deposit_attempt", -1)
            .skip(WorkflowUtils.skip_for(page, size))
            .limit(size)
        )
        return [self.deposit_summary(ManuscriptInDB(**doc)) async for doc in cursor], total

    async def get_deposit(self, manuscript_id, actor: UserInDB) -> Dict[str, Any]:
        require_roles(actor, (Role.EDITOR, Role.ADMIN), "view DOI deposits", "doi")
        manuscript = await self.manuscripts.get_or_404(manuscript_id)
        detail = self.deposit_summary(manuscript)
        detail["deposit_history"] = [a.dict() for a in manuscript.doi_metadata.deposit_history]
        return detail
