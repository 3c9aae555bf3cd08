"""
Tests for issue assembly and publication.
"""

from unittest.mock import AsyncMock, patch

import pytest
from pymongo.errors import AutoReconnect

from editorial.core.error_handling import (
    AlreadyPublishedError,
    ConflictError,
    IssueLockedError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
    ValidationError,
)
from editorial.models import DepositStatus, IssueCreate, IssueUpdate, ManuscriptStatus
from editorial.services.timeline import events

from conftest import notification_types

pytestmark = pytest.mark.asyncio


@pytest.fixture
def new_issue(services, editor):
    counter = {"n": 0}

    async def _new_issue(volume: int = 1, issue_number: int = None, **fields):
        counter["n"] += 1
        data = IssueCreate(volume=volume, issue_number=issue_number or counter["n"], year=2026, **fields)
        return await services.issues.create_issue(data, editor)
    return _new_issue


class TestIssueRecords:

    async def test_create(self, new_issue, editor):
        issue = await new_issue(volume=3, issue_number=2, title="Spring")

        assert issue.issue_identifier == "Vol. 3, No. 2 (2026)"
        assert issue.is_published is False
        assert issue.created_by == editor.id

    async def test_year_defaults_to_current(self, services, editor):
        issue = await services.issues.create_issue(IssueCreate(volume=9, issue_number=1), editor)
        assert issue.year >= 2026

    async def test_duplicate_volume_and_number(self, new_issue):
        await new_issue(volume=1, issue_number=1)
        with pytest.raises(ConflictError):
            await new_issue(volume=1, issue_number=1)

    async def test_author_cannot_create(self, services, author):
        with pytest.raises(UnauthorizedError):
            await services.issues.create_issue(IssueCreate(volume=1, issue_number=1), author)

    async def test_update(self, services, new_issue, editor):
        issue = await new_issue()
        updated = await services.issues.update_issue(issue.id, IssueUpdate(description="Special issue"), editor)
        assert updated.description == "Special issue"
        assert updated.title is None

    async def test_list_filters(self, services, new_issue, editor):
        first = await new_issue()
        await new_issue()
        await services.issues.publish_issue(first.id, editor)

        published, total = await services.issues.list_issues(published=True)
        assert total == 1
        assert published[0].id == first.id

        everything, total = await services.issues.list_issues(year=2026, page=1, size=1)
        assert total == 2
        assert len(everything) == 1

    async def test_unknown_issue(self, services):
        with pytest.raises(NotFoundError):
            await services.issues.get_issue("bogus")


class TestMembership:

    async def test_add_sets_back_reference(self, services, new_issue, accepted_manuscript, editor):
        issue = await new_issue()
        manuscript = await accepted_manuscript()

        updated = await services.issues.add_manuscript(issue.id, manuscript.id, editor, page_start=1, page_end=12)

        entry = updated.find_entry(manuscript.id)
        assert (entry.page_start, entry.page_end) == (1, 12)
        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.published_in == issue.id

    async def test_only_accepted_manuscripts(self, services, new_issue, submit, editor):
        issue = await new_issue()
        manuscript = await submit()
        with pytest.raises(PreconditionFailedError):
            await services.issues.add_manuscript(issue.id, manuscript.id, editor)

    async def test_twice_in_same_issue(self, services, new_issue, accepted_manuscript, editor):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        await services.issues.add_manuscript(issue.id, manuscript.id, editor)

        with pytest.raises(ConflictError):
            await services.issues.add_manuscript(issue.id, manuscript.id, editor)

    async def test_already_in_another_issue(self, services, new_issue, accepted_manuscript, editor):
        first, second = await new_issue(), await new_issue()
        manuscript = await accepted_manuscript()
        await services.issues.add_manuscript(first.id, manuscript.id, editor)

        with pytest.raises(ConflictError):
            await services.issues.add_manuscript(second.id, manuscript.id, editor)

    async def test_page_range(self, services, new_issue, accepted_manuscript, editor):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        with pytest.raises(ValidationError):
            await services.issues.add_manuscript(issue.id, manuscript.id, editor, page_start=10, page_end=3)

        stored = await services.issues.get_issue(issue.id)
        assert stored.manuscripts == []

    async def test_remove(self, services, new_issue, accepted_manuscript, editor):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        await services.issues.add_manuscript(issue.id, manuscript.id, editor)

        updated = await services.issues.remove_manuscript(issue.id, manuscript.id, editor)

        assert updated.manuscripts == []
        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.published_in is None
        with pytest.raises(NotFoundError):
            await services.issues.remove_manuscript(issue.id, manuscript.id, editor)

    async def test_table_of_contents_uses_stored_pages(self, services, new_issue, accepted_manuscript, editor):
        issue = await new_issue()
        first = await accepted_manuscript()
        second = await accepted_manuscript()
        await services.issues.add_manuscript(issue.id, first.id, editor, page_start=1, page_end=14)
        await services.issues.add_manuscript(issue.id, second.id, editor, page_start=15, page_end=30)

        contents = await services.issues.table_of_contents(issue.id)

        assert [c.manuscript_id for c in contents] == [first.manuscript_id, second.manuscript_id]
        assert [(c.page_start, c.page_end) for c in contents] == [(1, 14), (15, 30)]
        assert contents[0].authors == [f"{a.first_name} {a.last_name}" for a in first.authors]


class TestPublication:

    async def test_full_lifecycle(self, services, submit, new_issue, editor, author, reviewers, notifier):
        manuscript = await submit()
        assert manuscript.status == ManuscriptStatus.SUBMITTED
        assert manuscript.current_version == 1

        await services.manuscripts.assign_editor(manuscript.id, editor.id, editor)
        first, second = await services.reviews.assign_reviewers(
            manuscript.id, [r.id for r in reviewers[:2]], editor
        )
        for review, reviewer in ((first, reviewers[0]), (second, reviewers[1])):
            await services.reviews.accept_invitation(review.id, reviewer)
            await services.reviews.submit_review(review.id, reviewer, "Accept", "Sound work", "Nicely done")
        await services.manuscripts.make_decision(manuscript.id, "Accept", None, editor)

        issue = await new_issue()
        await services.issues.add_manuscript(issue.id, manuscript.id, editor, page_start=1, page_end=20)
        result = await services.issues.publish_issue(issue.id, editor)

        assert result.issue.is_published is True
        assert result.issue.published_date is not None
        assert [r.success for r in result.doi_results] == [True]

        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.status == ManuscriptStatus.PUBLISHED
        assert stored.published_date is not None
        assert stored.doi is not None
        assert stored.doi_metadata.deposit_attempts == 1
        assert events(stored) == [
            "Manuscript Submitted",
            "Editor Assigned",
            "Reviewers Assigned",
            "Review Completed",
            "Review Completed",
            "Decision: Accept",
            "Published",
        ]
        assert stored.timeline[-1].details == f"Published in {issue.issue_identifier} with DOI: {stored.doi}"
        assert "/articles/doi/" in stored.public_url

        assert notification_types(notifier)[-1] == "publication_notice"
        assert notifier.notify.call_args_list[-1].args[0] == author.id

    async def test_registrar_failure_does_not_block(self, services, new_issue, accepted_manuscript, editor, registrar):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        registrar.fail_for(manuscript.manuscript_id)
        await services.issues.add_manuscript(issue.id, manuscript.id, editor)

        result = await services.issues.publish_issue(issue.id, editor)

        assert [r.success for r in result.doi_results] == [False]
        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.status == ManuscriptStatus.PUBLISHED
        assert stored.doi is None
        assert stored.doi_metadata.deposit_status == DepositStatus.FAILED
        assert stored.timeline[-1].details == f"Published in {issue.issue_identifier}"

    async def test_database_error_during_deposit_does_not_block(self, services, new_issue, accepted_manuscript, editor):
        issue = await new_issue()
        first, second = await accepted_manuscript(), await accepted_manuscript()
        for manuscript in (first, second):
            await services.issues.add_manuscript(issue.id, manuscript.id, editor)
        lookup = AsyncMock(side_effect=[AutoReconnect("primary stepped down"), False])

        with patch.object(services.doi, "doi_taken_by_other", lookup):
            result = await services.issues.publish_issue(issue.id, editor)

        assert [r.success for r in result.doi_results] == [False, True]
        assert result.issue.is_published is True
        stored = await services.manuscripts.get_or_404(first.id)
        assert stored.status == ManuscriptStatus.PUBLISHED
        assert stored.doi_metadata.deposit_status == DepositStatus.FAILED
        assert stored.doi_metadata.deposit_attempts == len(stored.doi_metadata.deposit_history) == 1
        assert (await services.manuscripts.get_or_404(second.id)).doi is not None

    async def test_existing_doi_is_kept(self, services, new_issue, accepted_manuscript, editor, admin, registrar):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        await services.doi.assign_manual(manuscript.id, "10.5555/kept", admin)
        await services.issues.add_manuscript(issue.id, manuscript.id, editor)

        result = await services.issues.publish_issue(issue.id, editor)

        assert result.doi_results == []
        assert registrar.calls == []
        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.doi == "10.5555/kept"

    async def test_double_publish_changes_nothing(self, services, new_issue, accepted_manuscript, editor, registrar):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        await services.issues.add_manuscript(issue.id, manuscript.id, editor)
        await services.issues.publish_issue(issue.id, editor)
        before_issue = await services.issues.get_issue(issue.id)
        before = await services.manuscripts.get_or_404(manuscript.id)

        with pytest.raises(AlreadyPublishedError):
            await services.issues.publish_issue(issue.id, editor)

        after_issue = await services.issues.get_issue(issue.id)
        after = await services.manuscripts.get_or_404(manuscript.id)
        assert after_issue.published_date == before_issue.published_date
        assert after.doi_metadata.deposit_attempts == before.doi_metadata.deposit_attempts
        assert len(after.timeline) == len(before.timeline)
        assert len(registrar.calls) == 1

    async def test_published_issue_is_locked(self, services, new_issue, accepted_manuscript, editor, admin):
        issue = await new_issue()
        await services.issues.publish_issue(issue.id, editor)
        manuscript = await accepted_manuscript()

        with pytest.raises(IssueLockedError):
            await services.issues.add_manuscript(issue.id, manuscript.id, editor)
        with pytest.raises(IssueLockedError):
            await services.issues.update_issue(issue.id, IssueUpdate(title="Renamed"), editor)
        with pytest.raises(IssueLockedError):
            await services.issues.delete_issue(issue.id, admin)


class TestDeleteIssue:

    async def test_clears_back_references(self, services, new_issue, accepted_manuscript, editor, admin):
        issue = await new_issue()
        manuscript = await accepted_manuscript()
        await services.issues.add_manuscript(issue.id, manuscript.id, editor)

        await services.issues.delete_issue(issue.id, admin)

        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.published_in is None
        assert stored.status == ManuscriptStatus.ACCEPTED
        with pytest.raises(NotFoundError):
            await services.issues.get_issue(issue.id)

    async def test_admin_only(self, services, new_issue, editor):
        issue = await new_issue()
        with pytest.raises(UnauthorizedError):
            await services.issues.delete_issue(issue.id, editor)
