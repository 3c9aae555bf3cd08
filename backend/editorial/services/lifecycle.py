"""
Manuscript lifecycle state machine.

    Submitted -> Under Review -> {Revisions Required <-> Revised Submitted}
              -> {Accepted, Rejected} -> Published

Every ``apply_*`` function checks its guard first and raises before touching
the manuscript, so a rejected transition leaves the document unmodified.
Persistence and notification are the caller's concern.
"""
from datetime import datetime
from typing import Iterable, Optional
from urllib.parse import quote

from editorial.core.config import settings
from editorial.core.error_handling import PreconditionFailedError, ValidationError
from editorial.core.logging_config import workflow_logger
from editorial.core.permissions import has_any_role, is_owner
from editorial.models.manuscript import (
    EditorDecisionRecord,
    EditorialDecision,
    ManuscriptInDB,
    ManuscriptStatus,
)
from editorial.models.user import Role, UserInDB
from .timeline import add_timeline_event

TERMINAL_STATUSES = frozenset({ManuscriptStatus.REJECTED.value, ManuscriptStatus.PUBLISHED.value})

DECIDABLE_STATUSES = frozenset({ManuscriptStatus.UNDER_REVIEW.value, ManuscriptStatus.REVISED_SUBMITTED.value})

# Characters left unescaped in DOI landing page paths
DOI_URL_SAFE = "-_.!~*'()"

DECISION_OUTCOMES = {
    EditorialDecision.ACCEPT: ManuscriptStatus.ACCEPTED,
    EditorialDecision.REJECT: ManuscriptStatus.REJECTED,
    EditorialDecision.REVISIONS_REQUIRED: ManuscriptStatus.REVISIONS_REQUIRED,
}


def is_terminal(manuscript: ManuscriptInDB) -> bool:
    return manuscript.status in TERMINAL_STATUSES


def is_assigned_editor(manuscript: ManuscriptInDB, user: UserInDB) -> bool:
    return manuscript.assigned_editor is not None and manuscript.assigned_editor == user.id


def can_view(manuscript: ManuscriptInDB, user: UserInDB, reviewer_ids: Iterable = ()) -> bool:
    """Submitter, editors, admins, the assigned editor and assigned reviewers."""
    if is_owner(manuscript, user) or is_assigned_editor(manuscript, user):
        return True
    if has_any_role(user, (Role.EDITOR, Role.ADMIN)):
        return True
    return user.id in set(reviewer_ids)


def _set_status(manuscript: ManuscriptInDB, new_status: ManuscriptStatus, event: str, actor_id) -> None:
    previous = manuscript.status
    manuscript.status = ManuscriptStatus(new_status).value
    manuscript.last_updated = datetime.utcnow()
    workflow_logger.log_transition(
        manuscript.manuscript_id, event, previous, manuscript.status,
        actor_id=str(actor_id) if actor_id else None
    )


def apply_editor_assignment(manuscript: ManuscriptInDB, editor: Optional[UserInDB], actor: UserInDB) -> None:
    if manuscript.status != ManuscriptStatus.SUBMITTED or manuscript.assigned_editor is not None:
        raise PreconditionFailedError(
            "Editor can only be assigned to a newly submitted manuscript without an editor",
            current_state=manuscript.status
        )
    if editor is None or not editor.is_active or not has_any_role(editor, (Role.EDITOR,)):
        raise ValidationError(
            "Assignee must be an active editor",
            field="editor_id",
            value=editor.id if editor else None
        )

    manuscript.assigned_editor = editor.id
    _set_status(manuscript, ManuscriptStatus.UNDER_REVIEW, "Editor Assigned", actor.id)
    add_timeline_event(
        manuscript, "Editor Assigned", actor.id,
        f"Assigned to {editor.full_name}"
    )


def apply_decision(
    manuscript: ManuscriptInDB,
    decision: str,
    comments: Optional[str],
    actor: UserInDB
) -> EditorDecisionRecord:
    try:
        kind = EditorialDecision(decision)
    except ValueError:
        raise ValidationError(
            f"Invalid decision '{decision}'",
            field="decision",
            value=decision
        )
    if manuscript.status not in DECIDABLE_STATUSES:
        raise PreconditionFailedError(
            f"Cannot render a decision on a manuscript in status '{manuscript.status}'",
            current_state=manuscript.status
        )

    record = EditorDecisionRecord(
        decision=kind.value,
        comments=comments,
        decided_at=datetime.utcnow(),
        decided_by=actor.id
    )
    manuscript.editor_decision = record
    _set_status(manuscript, DECISION_OUTCOMES[kind], f"Decision: {kind.value}", actor.id)
    add_timeline_event(manuscript, f"Decision: {kind.value}", actor.id, comments)
    return record


def ensure_revision_allowed(manuscript: ManuscriptInDB) -> None:
    if manuscript.status != ManuscriptStatus.REVISIONS_REQUIRED:
        raise PreconditionFailedError(
            "Revisions can only be submitted when the editor has requested them",
            current_state=manuscript.status
        )


def apply_revision_submitted(manuscript: ManuscriptInDB, version: int, notes: str, actor: UserInDB) -> None:
    _set_status(manuscript, ManuscriptStatus.REVISED_SUBMITTED, "Revision Submitted", actor.id)
    details = f"Version {version} submitted"
    if notes:
        details = f"{details}: {notes}"
    add_timeline_event(manuscript, "Revision Submitted", actor.id, details)


def apply_publication(
    manuscript: ManuscriptInDB,
    issue_identifier: str,
    actor: UserInDB,
    published_at: Optional[datetime] = None
) -> None:
    if manuscript.status != ManuscriptStatus.ACCEPTED:
        raise PreconditionFailedError(
            "Only accepted manuscripts can be published",
            current_state=manuscript.status
        )
    manuscript.published_date = published_at or datetime.utcnow()
    _set_status(manuscript, ManuscriptStatus.PUBLISHED, "Published", actor.id)
    details = f"Published in {issue_identifier}"
    if manuscript.doi:
        details = f"{details} with DOI: {manuscript.doi}"
    add_timeline_event(manuscript, "Published", actor.id, details)


def generate_public_url(manuscript: ManuscriptInDB, client_url: str = None) -> str:
    """Public landing page, keyed by DOI when one has been registered."""
    base = (client_url or settings.client_url).rstrip("/")
    if manuscript.doi:
        return f"{base}/articles/doi/{quote(manuscript.doi, safe=DOI_URL_SAFE)}"
    return f"{base}/articles/{manuscript.manuscript_id}"
