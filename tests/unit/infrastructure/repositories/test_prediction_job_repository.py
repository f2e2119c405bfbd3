from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import PyMongoError

from diabetify.domain.entities.errors import (
    CannotCancelJobError,
    InvalidJobTransitionError,
    JobConflictError,
    JobNotFoundError,
)
from diabetify.domain.entities.prediction_job import (
    JobStatus,
    PredictionJob,
    WhatIfOverride,
)


def _job(**overrides) -> PredictionJob:
    return PredictionJob(user_id=1, **overrides)


@pytest.mark.asyncio
async def test_save_and_get_job_round_trip(repositories) -> None:
    override = WhatIfOverride(
        smoking_status=0,
        avg_smoke_count=0,
        weight=70.0,
        is_hypertension=False,
        is_cholesterol=False,
        physical_activity_frequency=4,
    )
    job = _job(is_what_if=True, what_if_input=override)

    await repositories.jobs.save_job(job)
    loaded = await repositories.jobs.get_job_by_id(job.id)

    assert loaded is not None
    assert loaded.status is JobStatus.PENDING
    assert loaded.is_what_if
    assert loaded.what_if_input == override
    assert await repositories.jobs.get_job_by_id("missing") is None


@pytest.mark.asyncio
async def test_save_duplicate_job_raises_conflict(repositories) -> None:
    job = _job()
    await repositories.jobs.save_job(job)

    with pytest.raises(JobConflictError):
        await repositories.jobs.save_job(job)


@pytest.mark.asyncio
async def test_status_moves_along_legal_edges(repositories) -> None:
    job = _job()
    await repositories.jobs.save_job(job)

    processing = await repositories.jobs.update_job_status(
        job.id, JobStatus.PROCESSING, feature_info={"age": 49}
    )
    assert processing.status is JobStatus.PROCESSING
    assert processing.feature_info == {"age": 49}
    assert processing.completed_at is None

    await repositories.jobs.update_job_status(job.id, JobStatus.SUBMITTED)
    completed = await repositories.jobs.update_job_status_with_result(
        job.id, JobStatus.COMPLETED, 12
    )

    assert completed.status is JobStatus.COMPLETED
    assert completed.prediction_id == 12
    assert completed.completed_at is not None
    assert completed.updated_at >= completed.created_at


@pytest.mark.asyncio
async def test_illegal_transition_is_rejected_without_writing(repositories) -> None:
    job = _job()
    await repositories.jobs.save_job(job)

    with pytest.raises(InvalidJobTransitionError) as exc:
        await repositories.jobs.update_job_status(job.id, JobStatus.COMPLETED)

    assert exc.value.current is JobStatus.PENDING
    stored = await repositories.jobs.get_job_by_id(job.id)
    assert stored.status is JobStatus.PENDING


@pytest.mark.asyncio
async def test_terminal_status_is_final(repositories) -> None:
    job = _job()
    await repositories.jobs.save_job(job)
    await repositories.jobs.update_job_status(job.id, JobStatus.FAILED, error="boom")

    with pytest.raises(InvalidJobTransitionError):
        await repositories.jobs.update_job_status(job.id, JobStatus.PROCESSING)

    stored = await repositories.jobs.get_job_by_id(job.id)
    assert stored.error == "boom"


@pytest.mark.asyncio
async def test_update_unknown_job_raises_not_found(repositories) -> None:
    with pytest.raises(JobNotFoundError):
        await repositories.jobs.update_job_status("nope", JobStatus.FAILED, error="x")


@pytest.mark.asyncio
async def test_result_update_requires_completed_status(repositories) -> None:
    job = _job()
    await repositories.jobs.save_job(job)

    with pytest.raises(InvalidJobTransitionError):
        await repositories.jobs.update_job_status_with_result(
            job.id, JobStatus.FAILED, 1
        )


@pytest.mark.asyncio
async def test_cancel_pending_and_processing_jobs(repositories) -> None:
    pending = _job()
    processing = _job()
    await repositories.jobs.save_job(pending)
    await repositories.jobs.save_job(processing)
    await repositories.jobs.update_job_status(processing.id, JobStatus.PROCESSING)

    assert (await repositories.jobs.cancel_job(pending.id)).status is JobStatus.CANCELLED
    assert (
        await repositories.jobs.cancel_job(processing.id)
    ).status is JobStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_submitted_job_is_refused(repositories) -> None:
    job = _job()
    await repositories.jobs.save_job(job)
    await repositories.jobs.update_job_status(job.id, JobStatus.PROCESSING)
    await repositories.jobs.update_job_status(job.id, JobStatus.SUBMITTED)

    with pytest.raises(CannotCancelJobError) as exc:
        await repositories.jobs.cancel_job(job.id)

    assert exc.value.message == "Cannot cancel job that has been submitted to ML service"


@pytest.mark.asyncio
async def test_get_pending_jobs_oldest_first(repositories) -> None:
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    newer = _job(created_at=base + timedelta(minutes=5))
    older = _job(created_at=base)
    done = _job(created_at=base - timedelta(minutes=5))
    for job in (newer, older, done):
        await repositories.jobs.save_job(job)
    await repositories.jobs.update_job_status(done.id, JobStatus.FAILED, error="x")

    pending = await repositories.jobs.get_pending_jobs(limit=10)

    assert [job.id for job in pending] == [older.id, newer.id]
    assert len(await repositories.jobs.get_pending_jobs(limit=1)) == 1


@pytest.mark.asyncio
async def test_list_jobs_newest_first_with_filter(repositories) -> None:
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    jobs = [_job(created_at=base + timedelta(minutes=i)) for i in range(3)]
    other_user = PredictionJob(user_id=2, created_at=base)
    for job in [*jobs, other_user]:
        await repositories.jobs.save_job(job)
    await repositories.jobs.cancel_job(jobs[0].id)

    listed = await repositories.jobs.get_jobs_by_user_id(1, limit=2)
    cancelled = await repositories.jobs.get_jobs_by_user_id(
        1, limit=10, status=JobStatus.CANCELLED
    )

    assert [job.id for job in listed] == [jobs[2].id, jobs[1].id]
    assert [job.id for job in cancelled] == [jobs[0].id]


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_terminal_jobs(
    repositories, fake_mongo_database
) -> None:
    old_done = _job()
    old_pending = _job()
    fresh_done = _job()
    for job in (old_done, old_pending, fresh_done):
        await repositories.jobs.save_job(job)
    await repositories.jobs.update_job_status(old_done.id, JobStatus.FAILED, error="x")
    await repositories.jobs.update_job_status(fresh_done.id, JobStatus.FAILED, error="x")

    stale = datetime.now(timezone.utc) - timedelta(days=10)
    collection = fake_mongo_database.get_collection("prediction_jobs")
    for document in collection.documents:
        if document["id"] in (old_done.id, old_pending.id):
            document["updated_at"] = stale

    deleted = await repositories.jobs.cleanup_old_jobs(
        datetime.now(timezone.utc) - timedelta(days=7)
    )

    assert deleted == 1
    assert await repositories.jobs.get_job_by_id(old_done.id) is None
    assert await repositories.jobs.get_job_by_id(old_pending.id) is not None
    assert await repositories.jobs.get_job_by_id(fresh_done.id) is not None


@pytest.mark.asyncio
async def test_database_errors_propagate(repositories, fake_mongo_database, monkeypatch) -> None:
    collection = fake_mongo_database.get_collection("prediction_jobs")

    def _fail(*args, **kwargs):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(collection, "find_one", _fail)

    with pytest.raises(PyMongoError):
        await repositories.jobs.get_job_by_id("any")
