"""Tests for ownership-filtered job queries."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.datetime_utils import utc_now
from app.core.errors import JobNotFoundError, StoreUnavailableError
from app.models.job import JobStatus, JobType
from app.schemas.job import JobFilters
from app.services.job_store import (
    get_job_stats,
    get_owned_job,
    list_jobs,
    page_count,
    store_errors,
)

pytestmark = pytest.mark.asyncio


class TestListJobs:
    """Tests for list_jobs."""

    async def test_pagination(self, db_session, owner, dataset_factory, job_factory):
        """Should return one page of jobs plus the total count."""
        dataset = await dataset_factory(owner=owner)
        start = utc_now() - timedelta(hours=1)
        for i in range(45):
            await job_factory(dataset=dataset, created_at=start + timedelta(seconds=i))

        jobs, total = await list_jobs(db_session, owner.id, page=1, limit=20)

        assert total == 45
        assert len(jobs) == 20
        assert page_count(total, 20) == 3

    async def test_newest_first(self, db_session, owner, dataset_factory, job_factory):
        """Should order by creation time, newest first."""
        dataset = await dataset_factory(owner=owner)
        now = utc_now()
        old = await job_factory(dataset=dataset, created_at=now - timedelta(days=2))
        new = await job_factory(dataset=dataset, created_at=now)
        mid = await job_factory(dataset=dataset, created_at=now - timedelta(days=1))

        jobs, _ = await list_jobs(db_session, owner.id)

        assert [job.id for job in jobs] == [new.id, mid.id, old.id]

    async def test_pages_do_not_overlap(self, db_session, owner, dataset_factory, job_factory):
        """Should not repeat a job across pages, even with equal timestamps."""
        dataset = await dataset_factory(owner=owner)
        same_time = utc_now()
        for _ in range(6):
            await job_factory(dataset=dataset, created_at=same_time)

        first, _ = await list_jobs(db_session, owner.id, page=1, limit=3)
        second, _ = await list_jobs(db_session, owner.id, page=2, limit=3)

        assert not {job.id for job in first} & {job.id for job in second}

    async def test_page_past_end(self, db_session, owner, job_factory):
        """Should return no items but the full total."""
        await job_factory(owner=owner)

        jobs, total = await list_jobs(db_session, owner.id, page=5, limit=20)

        assert jobs == []
        assert total == 1

    async def test_only_owned_jobs(self, db_session, owner, user_factory, job_factory):
        """Should never include another user's jobs."""
        stranger = await user_factory()
        mine = await job_factory(owner=owner)
        await job_factory(owner=stranger)

        jobs, total = await list_jobs(db_session, owner.id)

        assert total == 1
        assert [job.id for job in jobs] == [mine.id]

    async def test_filters(self, db_session, owner, dataset_factory, job_factory):
        """Should combine status, type and dataset filters."""
        dataset = await dataset_factory(owner=owner)
        other_dataset = await dataset_factory(owner=owner)
        target = await job_factory(
            dataset=dataset, status=JobStatus.FAILED, type=JobType.ANONYMIZE
        )
        await job_factory(dataset=dataset, status=JobStatus.FAILED, type=JobType.EXTRACT_TEXT)
        await job_factory(dataset=dataset, status=JobStatus.QUEUED, type=JobType.ANONYMIZE)
        await job_factory(
            dataset=other_dataset, status=JobStatus.FAILED, type=JobType.ANONYMIZE
        )

        filters = JobFilters(
            status=JobStatus.FAILED, type=JobType.ANONYMIZE, dataset_id=dataset.id
        )
        jobs, total = await list_jobs(db_session, owner.id, filters)

        assert total == 1
        assert jobs[0].id == target.id


class TestGetOwnedJob:
    """Tests for get_owned_job."""

    async def test_owned(self, db_session, owner, job_factory):
        """Should return the job with its dataset and creator loaded."""
        job = await job_factory(owner=owner)

        found = await get_owned_job(db_session, job.id, owner.id)

        assert found.id == job.id
        assert found.dataset.id == job.dataset_id
        assert found.created_by.id == owner.id

    async def test_foreign_job_looks_missing(self, db_session, owner, user_factory, job_factory):
        """Should raise the same error for foreign and missing jobs."""
        stranger = await user_factory()
        job = await job_factory(owner=stranger)

        with pytest.raises(JobNotFoundError) as foreign:
            await get_owned_job(db_session, job.id, owner.id)
        with pytest.raises(JobNotFoundError) as missing:
            await get_owned_job(db_session, "missing", owner.id)

        assert foreign.value.message == missing.value.message


class TestGetJobStats:
    """Tests for get_job_stats."""

    async def test_counts_by_status(self, db_session, owner, user_factory, job_factory):
        """Should count only the owner's jobs, with zeros for empty statuses."""
        stranger = await user_factory()
        for status in (JobStatus.QUEUED, JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.FAILED):
            await job_factory(owner=owner, status=status)
        await job_factory(owner=stranger, status=JobStatus.COMPLETED)

        stats = await get_job_stats(db_session, owner.id)

        assert stats == {
            "queued": 2,
            "running": 1,
            "completed": 0,
            "failed": 1,
            "cancelled": 0,
            "total": 4,
        }

    async def test_no_jobs(self, db_session, owner):
        """Should return all zeros."""
        stats = await get_job_stats(db_session, owner.id)

        assert stats["total"] == 0
        assert set(stats) == {"queued", "running", "completed", "failed", "cancelled", "total"}


class TestStoreErrors:
    """Tests for store_errors."""

    async def test_translates_operational_error(self):
        """Should raise StoreUnavailableError for connectivity failures."""
        with pytest.raises(StoreUnavailableError) as exc_info:
            async with store_errors("list_jobs"):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        assert exc_info.value.status_code == 503

    async def test_other_errors_propagate(self):
        """Should leave unrelated errors untouched."""
        with pytest.raises(ValueError):
            async with store_errors("list_jobs"):
                raise ValueError("bad input")
