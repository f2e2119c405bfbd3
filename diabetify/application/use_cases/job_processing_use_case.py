"""
Application Use Case - Job Processing

What a worker does with one queued request: load the user's data, assemble
features, move the job to ``processing``, publish to the ML service and move
it to ``submitted``. Every failure ends in a ``failed`` job; nothing is
re-raised to the worker loop.
"""

import asyncio
from typing import Optional

import structlog

from diabetify.domain.entities.errors import (
    BusUnavailableError,
    DomainError,
    FeatureValidationError,
    IncompleteProfileError,
    InvalidJobTransitionError,
    JobNotFoundError,
)
from diabetify.domain.entities.prediction_job import JobRequest, JobStatus
from diabetify.domain.entities.user import ActivityType
from diabetify.domain.ports.ml_client import IMLClient
from diabetify.domain.repositories.prediction_job_repository import (
    IPredictionJobRepository,
)
from diabetify.domain.repositories.user_repository import (
    IActivityRepository,
    IUserProfileRepository,
    IUserRepository,
)
from diabetify.domain.services.feature_assembler import (
    ACTIVITY_WINDOW,
    FeatureAssembler,
)

logger = structlog.get_logger(__name__)

DEFAULT_PUBLISH_TIMEOUT_SECONDS = 30.0


class PredictionJobProcessor:
    """Runs the pre-ML phase of a prediction job."""

    def __init__(
        self,
        job_repository: IPredictionJobRepository,
        user_repository: IUserRepository,
        profile_repository: IUserProfileRepository,
        activity_repository: IActivityRepository,
        ml_client: IMLClient,
        feature_assembler: Optional[FeatureAssembler] = None,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT_SECONDS,
    ):
        self.job_repository = job_repository
        self.user_repository = user_repository
        self.profile_repository = profile_repository
        self.activity_repository = activity_repository
        self.ml_client = ml_client
        self.feature_assembler = feature_assembler or FeatureAssembler()
        self.publish_timeout = publish_timeout

    async def process(self, request: JobRequest) -> None:
        log = logger.bind(job_id=request.job_id, user_id=request.user_id)
        try:
            await self._process(request, log)
        except Exception as exc:
            log.error("job_processor.unexpected_error", error=str(exc), exc_info=exc)
            await self._fail(request.job_id, f"Unexpected error: {exc}")

    async def _process(self, request: JobRequest, log) -> None:
        job = await self.job_repository.get_job_by_id(request.job_id)
        if job is None:
            log.warning("job_processor.job_missing")
            return
        if job.status != JobStatus.PENDING:
            log.info("job_processor.skipped", status=job.status.value)
            return

        user = await self.user_repository.get_user_by_id(request.user_id)
        if user is None:
            await self._fail(job.id, f"User not found: {request.user_id}")
            return
        profile = await self.profile_repository.find_by_user_id(request.user_id)
        if profile is None:
            await self._fail(job.id, f"Profile not found: {request.user_id}")
            return

        now = self.feature_assembler.now()
        smoke_activities = await self.activity_repository.get_activities_by_user_id_and_type(
            request.user_id, ActivityType.SMOKE
        )
        workouts = await self.activity_repository.get_activities_in_range(
            request.user_id, ActivityType.WORKOUT, now - ACTIVITY_WINDOW, now
        )

        try:
            features = self.feature_assembler.assemble(
                user, profile, smoke_activities, workouts, what_if=request.what_if
            )
        except IncompleteProfileError as exc:
            await self._fail(job.id, exc.message)
            return
        except DomainError as exc:
            await self._fail(job.id, f"Failed to calculate features: {exc.message}")
            return

        try:
            await self.job_repository.update_job_status(
                job.id, JobStatus.PROCESSING, feature_info=features.to_info()
            )
        except InvalidJobTransitionError:
            log.info("job_processor.cancelled_before_publish")
            return

        try:
            await asyncio.wait_for(
                self.ml_client.predict_async(job.id, features.to_vector()),
                timeout=self.publish_timeout,
            )
        except asyncio.TimeoutError:
            await self._fail(
                job.id,
                "Failed to submit to ML service: publish timed out after "
                f"{self.publish_timeout:g}s",
            )
            return
        except (BusUnavailableError, FeatureValidationError) as exc:
            await self._fail(job.id, f"Failed to submit to ML service: {exc.message}")
            return

        try:
            await self.job_repository.update_job_status(job.id, JobStatus.SUBMITTED)
        except InvalidJobTransitionError as exc:
            log.warning(
                "job_processor.submitted_transition_rejected",
                current=getattr(exc.current, "value", exc.current),
            )
            return

        log.info("job_processor.submitted", is_what_if=request.is_what_if)

    async def _fail(self, job_id: str, error: str) -> None:
        try:
            await self.job_repository.update_job_status(
                job_id, JobStatus.FAILED, error=error
            )
            logger.warning("job_processor.job_failed", job_id=job_id, error=error)
        except (InvalidJobTransitionError, JobNotFoundError) as exc:
            logger.info(
                "job_processor.fail_skipped", job_id=job_id, reason=exc.message
            )
