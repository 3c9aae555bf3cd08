"""
Tests for reviewer assignment and the review cycle.
"""

from datetime import datetime, timedelta

import pytest

from editorial.core.error_handling import (
    AlreadyCompletedError,
    AlreadyRespondedError,
    PreconditionFailedError,
    UnauthorizedError,
    ValidationError,
)
from editorial.models import ManuscriptStatus, ReviewStatus, Role

from conftest import make_file, notification_types

pytestmark = pytest.mark.asyncio


@pytest.fixture
def under_review(services, submit, editor):
    async def _under_review():
        manuscript = await submit()
        return await services.manuscripts.assign_editor(manuscript.id, editor.id, editor)
    return _under_review


class TestAssignReviewers:

    async def test_creates_invitations(self, services, under_review, editor, reviewers, notifier):
        manuscript = await under_review()
        notifier.notify.reset_mock()

        reviews = await services.reviews.assign_reviewers(
            manuscript.id, [r.id for r in reviewers[:2]], editor
        )

        assert len(reviews) == 2
        for review in reviews:
            assert review.status == ReviewStatus.INVITATION_SENT
            assert review.review_round == 1
            assert review.assigned_by == editor.id
            assert timedelta(days=13) < review.due_date - review.invitation_sent_date <= timedelta(days=14)
        assert notification_types(notifier) == ["review_invitation", "review_invitation"]

        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.timeline[-1].event == "Reviewers Assigned"
        assert stored.timeline[-1].details == "2 reviewer(s) assigned"

    async def test_explicit_due_date(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        due = datetime(2030, 3, 1, 9, 0, 0)

        reviews = await services.reviews.assign_reviewers(
            manuscript.id, [r.id for r in reviewers[:2]], editor, due_date=due
        )
        assert {r.due_date for r in reviews} == {due}

    async def test_minimum_distinct_reviewers(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        with pytest.raises(ValidationError):
            await services.reviews.assign_reviewers(manuscript.id, [reviewers[0].id], editor)
        with pytest.raises(ValidationError):
            await services.reviews.assign_reviewers(
                manuscript.id, [reviewers[0].id, str(reviewers[0].id)], editor
            )

    async def test_assignees_must_be_active_reviewers(self, services, under_review, editor, reviewers, make_user, author):
        manuscript = await under_review()
        inactive = await make_user(Role.REVIEWER, is_active=False)

        for other in (inactive, author):
            with pytest.raises(ValidationError):
                await services.reviews.assign_reviewers(manuscript.id, [reviewers[0].id, other.id], editor)

        assert await services.reviews.list_manuscript_reviews(manuscript.id, editor) == []

    async def test_already_assigned_reviewers_are_skipped(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

        created = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers], editor)

        assert [r.reviewer_id for r in created] == [reviewers[2].id]
        assert len(await services.reviews.list_manuscript_reviews(manuscript.id, editor)) == 3

    async def test_nothing_new_adds_no_timeline_entry(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)
        before = await services.manuscripts.get_or_404(manuscript.id)

        created = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

        after = await services.manuscripts.get_or_404(manuscript.id)
        assert created == []
        assert len(after.timeline) == len(before.timeline)

    async def test_author_cannot_assign(self, services, under_review, author, reviewers):
        manuscript = await under_review()
        with pytest.raises(UnauthorizedError):
            await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], author)

    async def test_closed_manuscript(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        await services.manuscripts.make_decision(manuscript.id, "Reject", None, editor)

        with pytest.raises(PreconditionFailedError):
            await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

    async def test_round_follows_current_version(self, services, under_review, editor, author, reviewers):
        manuscript = await under_review()
        await services.manuscripts.make_decision(manuscript.id, "Revisions Required", None, editor)
        await services.manuscripts.submit_revision(manuscript.id, [make_file()], author)

        reviews = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)
        assert {r.review_round for r in reviews} == {2}


class TestReviewCycle:

    async def test_two_reviewer_scenario(self, services, under_review, editor, reviewers, notifier):
        manuscript = await under_review()
        first, second = await services.reviews.assign_reviewers(
            manuscript.id, [r.id for r in reviewers[:2]], editor
        )

        accepted = await services.reviews.accept_invitation(first.id, reviewers[0])
        assert accepted.status == ReviewStatus.IN_PROGRESS
        assert accepted.invitation_response.accepted is True

        declined = await services.reviews.decline_invitation(second.id, reviewers[1], "Conflict of interest")
        assert declined.status == ReviewStatus.DECLINED
        assert declined.invitation_response.decline_reason == "Conflict of interest"

        completed = await services.reviews.submit_review(
            first.id, reviewers[0], "Minor Revision", "For the editor only", "Please clarify the method."
        )
        assert completed.status == ReviewStatus.COMPLETED
        assert completed.recommendation == "Minor Revision"
        assert completed.submitted_date is not None

        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.status == ManuscriptStatus.UNDER_REVIEW
        assert stored.timeline[-1].event == "Review Completed"
        assert notification_types(notifier)[-1] == "review_completed"
        assert notifier.notify.call_args_list[-1].args[0] == editor.id

    async def test_second_response_is_refused(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)
        await services.reviews.decline_invitation(review.id, reviewers[0])

        with pytest.raises(AlreadyRespondedError):
            await services.reviews.accept_invitation(review.id, reviewers[0])

        stored = await services.reviews.get_or_404(review.id)
        assert stored.status == ReviewStatus.DECLINED
        assert stored.invitation_response.accepted is False

    async def test_only_the_invited_reviewer_responds(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

        with pytest.raises(UnauthorizedError):
            await services.reviews.accept_invitation(review.id, reviewers[1])
        with pytest.raises(UnauthorizedError):
            await services.reviews.get_review(review.id, reviewers[2])

    async def test_submit_before_accepting(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

        with pytest.raises(PreconditionFailedError):
            await services.reviews.submit_review(review.id, reviewers[0], "Accept", "ok", "ok")

    @pytest.mark.parametrize("recommendation,confidential,for_author", [
        (None, "c", "a"),
        ("Accept", "  ", "a"),
        ("Accept", "c", None),
        ("Strong accept", "c", "a"),
        ("Accept", "c" * 5001, "a"),
    ])
    async def test_submission_validation(self, services, under_review, editor, reviewers,
                                         recommendation, confidential, for_author):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)
        await services.reviews.accept_invitation(review.id, reviewers[0])

        with pytest.raises(ValidationError):
            await services.reviews.submit_review(review.id, reviewers[0], recommendation, confidential, for_author)

        stored = await services.reviews.get_or_404(review.id)
        assert stored.status == ReviewStatus.IN_PROGRESS

    async def test_double_submission(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)
        await services.reviews.accept_invitation(review.id, reviewers[0])
        await services.reviews.submit_review(review.id, reviewers[0], "Accept", "c", "a")

        with pytest.raises(AlreadyCompletedError):
            await services.reviews.submit_review(review.id, reviewers[0], "Reject", "c", "a")

        stored = await services.reviews.get_or_404(review.id)
        assert stored.recommendation == "Accept"


class TestReminders:

    async def test_reminders_accumulate(self, services, under_review, editor, reviewers, notifier):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

        await services.reviews.send_reminder(review.id, editor)
        reminded = await services.reviews.send_reminder(review.id, editor)

        assert len(reminded.reminders_sent) == 2
        assert reminded.last_reminder_date == reminded.reminders_sent[-1]
        assert notification_types(notifier)[-1] == "review_reminder"
        assert notifier.notify.call_args_list[-1].args[0] == reviewers[0].id

    async def test_completed_review(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)
        await services.reviews.accept_invitation(review.id, reviewers[0])
        await services.reviews.submit_review(review.id, reviewers[0], "Accept", "c", "a")

        with pytest.raises(PreconditionFailedError):
            await services.reviews.send_reminder(review.id, editor)

    async def test_reviewer_cannot_send_reminders(self, services, under_review, editor, reviewers):
        manuscript = await under_review()
        review, _ = await services.reviews.assign_reviewers(manuscript.id, [r.id for r in reviewers[:2]], editor)

        with pytest.raises(UnauthorizedError):
            await services.reviews.send_reminder(review.id, reviewers[1])


class TestReviewerQueue:

    async def test_my_reviews_filtered_by_status(self, services, under_review, editor, reviewers):
        first = await under_review()
        second = await under_review()
        review_a, _ = await services.reviews.assign_reviewers(first.id, [r.id for r in reviewers[:2]], editor)
        await services.reviews.assign_reviewers(second.id, [r.id for r in reviewers[:2]], editor)
        await services.reviews.accept_invitation(review_a.id, reviewers[0])

        everything = await services.reviews.list_reviews_for_reviewer(reviewers[0])
        in_progress = await services.reviews.list_reviews_for_reviewer(reviewers[0], ReviewStatus.IN_PROGRESS)

        assert len(everything) == 2
        assert [r.id for r in in_progress] == [review_a.id]
