"""
Revision ledger: versioned resubmissions of a manuscript and the file
comparison between any two of its versions.

Version 1 is the original submission and lives in ``manuscript.files``;
every later version is an immutable ``Revision`` in ``manuscript.revisions``.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from editorial.core.error_handling import NotFoundError, ValidationError
from editorial.models.manuscript import (
    ComparisonSummary,
    FileChange,
    ManuscriptFile,
    ManuscriptInDB,
    Revision,
    RevisionComparison,
)

MAX_REVISION_NOTES = 2000


def validate_revision_input(files: List[ManuscriptFile], revision_notes: str) -> None:
    if not files:
        raise ValidationError("At least one file is required for a revision", field="files")
    if revision_notes and len(revision_notes) > MAX_REVISION_NOTES:
        raise ValidationError(
            f"Revision notes cannot exceed {MAX_REVISION_NOTES} characters",
            field="revision_notes",
            value=len(revision_notes)
        )


def append_revision(
    manuscript: ManuscriptInDB,
    files: List[ManuscriptFile],
    submitted_by,
    response_to_reviewers: Optional[str] = None,
    revision_notes: str = ""
) -> Revision:
    """Append the next version and advance ``current_version`` by one."""
    validate_revision_input(files, revision_notes)

    revision = Revision(
        version=manuscript.current_version + 1,
        files=list(files),
        response_to_reviewers=response_to_reviewers,
        revision_notes=revision_notes or "",
        submitted_at=datetime.utcnow(),
        submitted_by=submitted_by
    )
    manuscript.revisions.append(revision)
    manuscript.current_version = revision.version
    return revision


def list_versions(manuscript: ManuscriptInDB) -> List[Dict]:
    """Ordered view of every version, starting with the original submission."""
    versions = [{
        "version": 1,
        "files": manuscript.files,
        "submitted_at": manuscript.submission_date,
        "submitted_by": manuscript.submitted_by,
        "revision_notes": "",
        "response_to_reviewers": None,
    }]
    for revision in manuscript.revisions:
        versions.append({
            "version": revision.version,
            "files": revision.files,
            "submitted_at": revision.submitted_at,
            "submitted_by": revision.submitted_by,
            "revision_notes": revision.revision_notes,
            "response_to_reviewers": revision.response_to_reviewers,
        })
    return versions


def files_for_version(manuscript: ManuscriptInDB, version: int) -> List[ManuscriptFile]:
    if version == 1:
        return list(manuscript.files)
    for revision in manuscript.revisions:
        if revision.version == version:
            return list(revision.files)
    raise NotFoundError(
        f"Version {version} not found",
        resource="revision",
        resource_id=f"{manuscript.manuscript_id}/v{version}"
    )


def _is_modified(before: ManuscriptFile, after: ManuscriptFile) -> bool:
    return before.size != after.size or before.upload_date != after.upload_date


def _by_name(files: List[ManuscriptFile]) -> Dict[str, List[ManuscriptFile]]:
    grouped: Dict[str, List[ManuscriptFile]] = defaultdict(list)
    for f in files:
        grouped[f.original_name].append(f)
    return grouped


def compare_revisions(manuscript: ManuscriptInDB, v1: int, v2: int) -> RevisionComparison:
    """
    Classify the files of two versions as added, removed or modified.

    The lower version is treated as the earlier one regardless of argument
    order. Files are matched by their original name, in upload order when a
    version holds several files with the same name; unmatched leftovers are
    added or removed. Unchanged matches are not reported.
    """
    if v1 == v2:
        raise ValidationError("Cannot compare a version with itself", field="versions", value=v1)

    earlier, later = sorted((v1, v2))
    earlier_files = _by_name(files_for_version(manuscript, earlier))
    later_files = _by_name(files_for_version(manuscript, later))

    added: List[ManuscriptFile] = []
    removed: List[ManuscriptFile] = []
    modified: List[FileChange] = []
    for name in list(earlier_files) + [n for n in later_files if n not in earlier_files]:
        before, after = earlier_files.get(name, []), later_files.get(name, [])
        for old, new in zip(before, after):
            if _is_modified(old, new):
                modified.append(FileChange(original_name=name, before=old, after=new))
        removed.extend(before[len(after):])
        added.extend(after[len(before):])

    return RevisionComparison(
        manuscript_id=manuscript.manuscript_id,
        from_version=earlier,
        to_version=later,
        added=added,
        removed=removed,
        modified=modified,
        summary=ComparisonSummary(
            added=len(added),
            removed=len(removed),
            modified=len(modified)
        )
    )
