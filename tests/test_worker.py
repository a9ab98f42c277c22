import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from fieldops.v1.core.exceptions import JobHandlerError
from fieldops.v1.core.registries import JobRegistry
from fieldops.v1.infra.jobs.models import Job, JobStatus
from fieldops.v1.infra.jobs.service import JobService
from fieldops.v1.infra.jobs.worker import JobWorker, WorkerState


class RecordingHandler:
    def __init__(self):
        self.payloads: list[dict[str, Any]] = []
        self.called = asyncio.Event()

    async def handle(self, session, payload):
        self.payloads.append(payload)
        self.called.set()
        return {"echo": payload.get("value")}


class FailingHandler:
    def __init__(self, message: str = "boom"):
        self.message = message
        self.calls = 0

    async def handle(self, session, payload):
        self.calls += 1
        raise JobHandlerError(self.message)


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def make_worker(test_settings, session_factory, registry):
    def _make(worker_id: str = "worker-a") -> JobWorker:
        return JobWorker(test_settings, session_factory, registry=registry, worker_id=worker_id)

    return _make


async def _enqueue(test_settings, db_session, job_type: str, payload: dict, **options):
    result = await JobService(test_settings).enqueue_job(db_session, job_type, payload, **options)
    return result.job_id


async def _load(session_factory, job_id) -> Job:
    async with session_factory() as session:
        return await session.get(Job, job_id)


async def test_poll_once_completes_job_and_stores_result(
    test_settings, db_session, session_factory, registry, make_worker
):
    handler = RecordingHandler()
    registry.register("echo", handler)
    job_id = await _enqueue(test_settings, db_session, "echo", {"value": 42})

    processed = await make_worker().poll_once()

    assert processed == 1
    assert handler.payloads == [{"value": 42}]
    job = await _load(session_factory, job_id)
    assert job.status == JobStatus.COMPLETED.value
    assert job.result == {"echo": 42}
    assert job.last_error is None
    assert job.attempts == 0
    # Completed jobs keep their claim marker
    assert job.locked_by == "worker-a"
    assert job.locked_at is not None


async def test_poll_once_with_empty_queue(make_worker):
    assert await make_worker().poll_once() == 0


async def test_claim_is_exclusive(test_settings, db_session, session_factory, make_worker):
    job_id = await _enqueue(test_settings, db_session, "echo", {"value": 1})
    first = make_worker("worker-a")
    second = make_worker("worker-b")

    assert await first.claim_job(job_id) is True
    assert await second.claim_job(job_id) is False

    job = await _load(session_factory, job_id)
    assert job.locked_by == "worker-a"
    assert job.status == JobStatus.PENDING.value


async def test_lost_claim_skips_handler(
    test_settings, db_session, registry, make_worker
):
    handler = RecordingHandler()
    registry.register("echo", handler)
    await _enqueue(test_settings, db_session, "echo", {"value": 1})

    slow = make_worker("worker-b")
    jobs = await slow.fetch_eligible_jobs()
    assert len(jobs) == 1

    # Another worker claims and finishes the job between fetch and claim
    assert await make_worker("worker-a").poll_once() == 1

    assert await slow.process_job(jobs[0]) is False
    assert len(handler.payloads) == 1


async def test_failure_unlocks_for_retry_then_fails_terminally(
    test_settings, db_session, session_factory, registry, make_worker
):
    handler = FailingHandler("downstream unavailable")
    registry.register("flaky", handler)
    job_id = await _enqueue(test_settings, db_session, "flaky", {}, max_attempts=2)
    worker = make_worker()

    await worker.poll_once()
    job = await _load(session_factory, job_id)
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 1
    assert job.last_error == "downstream unavailable"
    assert job.locked_at is None
    assert job.locked_by is None

    await worker.poll_once()
    job = await _load(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 2
    assert job.locked_at is None
    assert job.locked_by is None

    # FAILED jobs are never picked up again
    assert await worker.poll_once() == 0
    assert handler.calls == 2


async def test_unknown_job_type_is_recorded_as_failure(
    test_settings, db_session, session_factory, make_worker
):
    job_id = await _enqueue(test_settings, db_session, "no_such_type", {}, max_attempts=1)

    await make_worker().poll_once()

    job = await _load(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.last_error == "Unknown job type: no_such_type"


async def test_future_jobs_are_not_eligible(
    test_settings, db_session, registry, make_worker
):
    handler = RecordingHandler()
    registry.register("echo", handler)
    await _enqueue(
        test_settings,
        db_session,
        "echo",
        {"value": "later"},
        run_after=datetime.now(UTC) + timedelta(hours=1),
    )

    assert await make_worker().poll_once() == 0
    assert handler.payloads == []


async def test_jobs_processed_oldest_first(
    test_settings, db_session, registry, make_worker
):
    handler = RecordingHandler()
    registry.register("echo", handler)
    for value in ("first", "second", "third"):
        await _enqueue(test_settings, db_session, "echo", {"value": value})

    assert await make_worker().poll_once() == 3
    assert [p["value"] for p in handler.payloads] == ["first", "second", "third"]


async def test_start_polls_until_stopped(
    test_settings, db_session, session_factory, registry, make_worker
):
    handler = RecordingHandler()
    registry.register("echo", handler)
    job_id = await _enqueue(test_settings, db_session, "echo", {"value": "timer"})
    worker = make_worker()

    worker.start()
    assert worker.state is WorkerState.RUNNING
    worker.start()  # second start is a no-op

    await asyncio.wait_for(handler.called.wait(), timeout=5)
    worker.stop()
    await worker.drain()

    assert worker.state is WorkerState.STOPPED
    assert worker.running is False
    job = await _load(session_factory, job_id)
    assert job.status == JobStatus.COMPLETED.value


async def test_run_returns_after_stop_event(make_worker):
    worker = make_worker()
    stop_event = asyncio.Event()

    task = asyncio.create_task(worker.run(stop_event))
    await asyncio.sleep(0.05)
    assert worker.running

    stop_event.set()
    await asyncio.wait_for(task, timeout=5)
    assert worker.running is False


async def test_worker_identity_defaults(test_settings, session_factory):
    first = JobWorker(test_settings, session_factory, registry=JobRegistry())
    second = JobWorker(test_settings, session_factory, registry=JobRegistry())

    assert first.worker_id != second.worker_id
    assert first.poll_interval == test_settings.worker_poll_interval_ms / 1000
