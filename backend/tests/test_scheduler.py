"""
Tests for the DOI retry background job.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from editorial.core.config import settings
from editorial.main import create_scheduler, retry_failed_deposits
from editorial.models.issue import BulkRetryResult

pytestmark = [pytest.mark.asyncio, pytest.mark.scheduler]


class TestRetryJob:

    async def test_runs_bulk_retry_without_actor(self, services):
        services.doi.bulk_retry = AsyncMock(return_value=BulkRetryResult(processed=2, success=1, failed=1))

        await retry_failed_deposits(services)

        services.doi.bulk_retry.assert_awaited_once_with()

    async def test_errors_do_not_escape(self, services):
        services.doi.bulk_retry = AsyncMock(side_effect=RuntimeError("database unavailable"))
        await retry_failed_deposits(services)

    async def test_retries_real_failures(self, services, accepted_manuscript, registrar):
        manuscript = await accepted_manuscript()
        registrar.fail_for(manuscript.manuscript_id)
        await services.doi.attempt_deposit(manuscript)
        registrar.failures.clear()

        await retry_failed_deposits(services)

        stored = await services.manuscripts.get_or_404(manuscript.id)
        assert stored.doi is not None
        assert stored.doi_metadata.deposit_attempts == 2


class TestSchedulerConfiguration:

    async def test_single_non_overlapping_job(self, services):
        scheduler = create_scheduler(services)

        job = scheduler.get_job("retry_doi_deposits")
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval == timedelta(minutes=settings.doi_retry_interval_minutes)
