from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select, update

from fieldops.v1.core.exceptions import ConflictError, InvalidStatusError, NotFoundError
from fieldops.v1.infra.jobs.models import Job, JobStatus
from fieldops.v1.infra.jobs.service import JobService


@pytest.fixture
def job_service(test_settings) -> JobService:
    return JobService(test_settings)


async def _set_status(db_session, job_id, status: JobStatus, **values):
    await db_session.execute(
        update(Job)
        .where(Job.id == job_id)
        .values(status=status.value, **values)
        .execution_options(synchronize_session=False)
    )
    await db_session.commit()
    db_session.expire_all()


async def test_enqueue_creates_pending_job(job_service, db_session, test_settings):
    result = await job_service.enqueue_job(db_session, "time_entry_cost_post", {"time_entry_id": "x"})

    assert result.status == JobStatus.PENDING.value
    assert result.deduplicated is False

    job = await job_service.get_job(db_session, result.job_id)
    assert job.job_type == "time_entry_cost_post"
    assert job.payload == {"time_entry_id": "x"}
    assert job.attempts == 0
    assert job.max_attempts == test_settings.job_max_attempts
    assert job.locked_at is None
    assert job.dedupe_key == job_service.generate_dedupe_key(
        "time_entry_cost_post", {"time_entry_id": "x"}
    )


async def test_enqueue_deduplicates_identical_pending_jobs(job_service, db_session):
    first = await job_service.enqueue_job(db_session, "maintenance_cleanup", {"dry_run": True})
    second = await job_service.enqueue_job(db_session, "maintenance_cleanup", {"dry_run": True})

    assert second.deduplicated is True
    assert second.job_id == first.job_id

    count = len((await db_session.execute(select(Job))).scalars().all())
    assert count == 1


async def test_dedupe_key_is_freed_once_job_finishes(job_service, db_session):
    first = await job_service.enqueue_job(db_session, "echo", {}, dedupe_key="nightly")
    await _set_status(db_session, first.job_id, JobStatus.COMPLETED)

    second = await job_service.enqueue_job(db_session, "echo", {}, dedupe_key="nightly")

    assert second.deduplicated is False
    assert second.job_id != first.job_id


def test_dedupe_key_ignores_payload_key_order(job_service):
    assert job_service.generate_dedupe_key("t", {"a": 1, "b": 2}) == (
        job_service.generate_dedupe_key("t", {"b": 2, "a": 1})
    )
    assert job_service.generate_dedupe_key("t", {"a": 1}) != (
        job_service.generate_dedupe_key("u", {"a": 1})
    )


async def test_enqueue_honours_options(job_service, db_session):
    run_after = datetime.now(UTC) + timedelta(minutes=5)
    result = await job_service.enqueue_job(
        db_session, "echo", {"n": 1}, run_after=run_after, max_attempts=7
    )

    job = await job_service.get_job(db_session, result.job_id)
    assert job.max_attempts == 7
    assert job.run_after.replace(tzinfo=None) == run_after.replace(tzinfo=None)


async def test_get_job_not_found(job_service, db_session):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await job_service.get_job(db_session, uuid4())


async def test_retry_resurrects_failed_job(job_service, db_session):
    result = await job_service.enqueue_job(db_session, "echo", {"n": 2})
    await _set_status(
        db_session,
        result.job_id,
        JobStatus.FAILED,
        attempts=3,
        last_error="boom",
    )

    job = await job_service.retry_job(db_session, result.job_id)

    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 0
    assert job.last_error is None
    assert job.locked_at is None
    assert job.locked_by is None


async def test_retry_rejects_non_failed_job(job_service, db_session):
    result = await job_service.enqueue_job(db_session, "echo", {"n": 3})

    with pytest.raises(InvalidStatusError):
        await job_service.retry_job(db_session, result.job_id)


async def test_retry_conflicts_with_identical_pending_job(job_service, db_session):
    failed = await job_service.enqueue_job(db_session, "echo", {}, dedupe_key="same")
    await _set_status(db_session, failed.job_id, JobStatus.FAILED)
    await job_service.enqueue_job(db_session, "echo", {}, dedupe_key="same")

    with pytest.raises(ConflictError):
        await job_service.retry_job(db_session, failed.job_id)


async def test_list_jobs_filters_and_counts(job_service, db_session):
    for n in range(3):
        await job_service.enqueue_job(db_session, "echo", {"n": n})
    other = await job_service.enqueue_job(db_session, "other", {})
    await _set_status(db_session, other.job_id, JobStatus.FAILED)

    jobs, total = await job_service.list_jobs(db_session, job_type="echo", limit=2)
    assert total == 3
    assert len(jobs) == 2

    failed, failed_total = await job_service.list_jobs(db_session, status=JobStatus.FAILED)
    assert failed_total == 1
    assert failed[0].id == other.job_id


async def test_job_stats(job_service, db_session):
    await job_service.enqueue_job(db_session, "echo", {"n": 1})
    locked = await job_service.enqueue_job(db_session, "echo", {"n": 2})
    failed = await job_service.enqueue_job(db_session, "other", {})
    await _set_status(
        db_session,
        locked.job_id,
        JobStatus.PENDING,
        locked_at=datetime.now(UTC),
        locked_by="worker-x",
    )
    await _set_status(db_session, failed.job_id, JobStatus.FAILED, updated_at=datetime.now(UTC))

    stats = await job_service.get_job_stats(db_session)

    assert stats.total_jobs == 3
    assert stats.by_status == {"PENDING": 2, "FAILED": 1}
    assert stats.by_type == {"echo": 2, "other": 1}
    assert stats.queue_depth == 2
    assert stats.locked_jobs == 1
    assert stats.failed_last_hour == 1


async def test_cleanup_removes_only_old_terminal_jobs(job_service, db_session, test_settings):
    old = datetime.now(UTC) - timedelta(days=test_settings.job_cleanup_after_days + 1)

    stale_done = await job_service.enqueue_job(db_session, "echo", {"n": 1})
    stale_failed = await job_service.enqueue_job(db_session, "echo", {"n": 2})
    recent_done = await job_service.enqueue_job(db_session, "echo", {"n": 3})
    stale_pending = await job_service.enqueue_job(db_session, "echo", {"n": 4})

    await _set_status(db_session, stale_done.job_id, JobStatus.COMPLETED, updated_at=old)
    await _set_status(db_session, stale_failed.job_id, JobStatus.FAILED, updated_at=old)
    await _set_status(db_session, recent_done.job_id, JobStatus.COMPLETED)
    await _set_status(db_session, stale_pending.job_id, JobStatus.PENDING, updated_at=old)

    assert await job_service.cleanup_old_jobs(db_session, dry_run=True) == 2
    assert await job_service.cleanup_old_jobs(db_session) == 2

    remaining = {job.id for job in (await db_session.execute(select(Job))).scalars().all()}
    assert remaining == {recent_done.job_id, stale_pending.job_id}
