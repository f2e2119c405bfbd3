"""
Application Use Cases - Prediction Jobs

HTTP-facing operations: accept canonical and what-if prediction requests,
report job status, return results, cancel and list jobs. Ownership is checked
on every job lookup; the actual processing happens in the worker pool.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError

from diabetify.application.dtos.prediction_dto import (
    CancelJobResponseDTO,
    JobInfoDTO,
    JobListDTO,
    JobResultSummaryDTO,
    JobStatusDTO,
    JobSummaryDTO,
    PredictionResultDTO,
    SubmitJobResponseDTO,
    WhatIfInputDTO,
    prediction_explanations,
    prediction_user_data,
)
from diabetify.domain.entities.errors import (
    CacheUnavailableError,
    CannotCancelJobError,
    IncompleteProfileError,
    InvalidWhatIfInputError,
    JobAccessDeniedError,
    JobNotCompletedError,
    JobNotFoundError,
    JobSubmissionError,
    WhatIfResultExpiredError,
)
from diabetify.domain.entities.prediction_job import (
    JobRequest,
    JobStatus,
    PredictionJob,
    WhatIfOverride,
)
from diabetify.domain.ports.job_queue import IPredictionJobQueue
from diabetify.domain.ports.result_cache import IWhatIfResultCache
from diabetify.domain.repositories.prediction_job_repository import (
    IPredictionJobRepository,
)
from diabetify.domain.repositories.prediction_repository import IPredictionRepository
from diabetify.domain.repositories.user_repository import (
    IUserProfileRepository,
    IUserRepository,
)
from diabetify.domain.services.feature_assembler import missing_profile_fields

logger = structlog.get_logger(__name__)

DEFAULT_LIST_LIMIT = 10

REQUIRED_PROFILE_HELP = (
    "Please complete your profile with: date of birth, BMI, macrosomic baby "
    "history, diabetes bloodline, hypertension status, and cholesterol status"
)
REQUIRED_WHAT_IF_PROFILE_HELP = (
    "Please complete your profile with: date of birth, height, macrosomic baby "
    "history and diabetes bloodline"
)

_STATUS_MESSAGES: Dict[JobStatus, Tuple[str, Optional[str]]] = {
    JobStatus.PENDING: ("Job is waiting to be processed", None),
    JobStatus.PROCESSING: ("Job is being prepared for ML service", None),
    JobStatus.SUBMITTED: (
        "Job has been submitted to ML service and is being processed",
        "This may take a few minutes depending on ML service load",
    ),
    JobStatus.COMPLETED: ("Job completed successfully", None),
    JobStatus.FAILED: ("Job failed", None),
    JobStatus.CANCELLED: ("Job was cancelled", None),
}


def poll_url_for(job_id: str) -> str:
    return f"/prediction/job/{job_id}/status"


def format_processing_time(seconds: float) -> str:
    return f"{seconds:.3f}s"


class PredictionJobUseCase:
    """Use case for submitting and managing prediction jobs."""

    def __init__(
        self,
        job_repository: IPredictionJobRepository,
        prediction_repository: IPredictionRepository,
        user_repository: IUserRepository,
        profile_repository: IUserProfileRepository,
        job_queue: IPredictionJobQueue,
        what_if_cache: IWhatIfResultCache,
    ):
        self.job_repository = job_repository
        self.prediction_repository = prediction_repository
        self.user_repository = user_repository
        self.profile_repository = profile_repository
        self.job_queue = job_queue
        self.what_if_cache = what_if_cache

    async def submit_prediction(self, user_id: int) -> SubmitJobResponseDTO:
        """
        Accept a canonical prediction request.

        Raises:
            IncompleteProfileError: Stored data cannot yield all features.
            JobSubmissionError: The queue did not accept the job; the job row
                is marked failed before re-raising.
        """
        await self._ensure_profile_complete(user_id, what_if=False)
        job = await self._create_and_enqueue(user_id, None)
        return SubmitJobResponseDTO(
            job_id=job.id,
            status=job.status,
            message="Prediction job submitted successfully",
            submit_time=job.created_at,
            poll_url=poll_url_for(job.id),
        )

    async def submit_what_if(
        self, user_id: int, payload: Any
    ) -> SubmitJobResponseDTO:
        """
        Accept a what-if request with a raw JSON body.

        Raises:
            InvalidWhatIfInputError: The body fails validation.
            IncompleteProfileError: Height, date of birth or the fixed
                history flags are missing.
            JobSubmissionError: The queue did not accept the job.
        """
        try:
            what_if_input = WhatIfInputDTO.model_validate(payload)
        except ValidationError as exc:
            raise InvalidWhatIfInputError(
                "Invalid what-if input",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

        await self._ensure_profile_complete(user_id, what_if=True)
        job = await self._create_and_enqueue(user_id, what_if_input.to_domain())
        return SubmitJobResponseDTO(
            job_id=job.id,
            status=job.status,
            message="What-if prediction job submitted successfully",
            submit_time=job.created_at,
            poll_url=poll_url_for(job.id),
            input_used=what_if_input,
        )

    async def get_job_status(self, user_id: int, job_id: str) -> JobStatusDTO:
        job = await self._get_owned_job(user_id, job_id)
        message, note = _STATUS_MESSAGES[job.status]

        result = None
        if job.status == JobStatus.COMPLETED and job.prediction_id is not None:
            prediction = await self.prediction_repository.get_prediction_by_id(
                job.prediction_id
            )
            if prediction is not None:
                result = JobResultSummaryDTO(
                    prediction_id=job.prediction_id,
                    risk_score=prediction.risk_score,
                    risk_percentage=prediction.risk_percentage,
                    created_at=prediction.created_at,
                )

        return JobStatusDTO(
            job_id=job.id,
            status=job.status,
            is_what_if=job.is_what_if,
            message=message,
            note=note,
            error=job.error if job.status == JobStatus.FAILED else None,
            result=result,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
        )

    async def get_job_result(self, user_id: int, job_id: str) -> Any:
        """
        Return the result of a completed job.

        What-if jobs return the cached map as stored; canonical jobs return a
        ``PredictionResultDTO`` built from the stored Prediction.

        Raises:
            JobNotCompletedError: The job has not reached ``completed``.
            WhatIfResultExpiredError: The cached what-if map is gone.
            JobNotFoundError: The job or its prediction row is missing.
        """
        job = await self._get_owned_job(user_id, job_id)
        if job.status != JobStatus.COMPLETED:
            raise JobNotCompletedError(job.id, job.status)

        if job.is_what_if:
            try:
                cached = await self.what_if_cache.get_result(job.id)
            except CacheUnavailableError as exc:
                logger.warning(
                    "prediction_job.result.cache_unavailable",
                    job_id=job.id,
                    error=exc.message,
                )
                cached = None
            if cached is None:
                raise WhatIfResultExpiredError(job.id, self.what_if_cache.ttl_seconds)
            return cached

        prediction = None
        if job.prediction_id is not None:
            prediction = await self.prediction_repository.get_prediction_by_id(
                job.prediction_id
            )
        if prediction is None or prediction.id is None:
            logger.error(
                "prediction_job.result.missing_prediction",
                job_id=job.id,
                prediction_id=job.prediction_id,
            )
            raise JobNotFoundError(job.id, {"reason": "prediction not found"})

        return PredictionResultDTO(
            job_id=job.id,
            prediction_id=prediction.id,
            risk_score=prediction.risk_score,
            risk_percentage=prediction.risk_percentage,
            timestamp=prediction.created_at,
            user_data_used=prediction_user_data(prediction),
            feature_explanations=prediction_explanations(prediction),
            job_info=JobInfoDTO(
                completed_at=job.completed_at,
                processing_time=format_processing_time(job.processing_time()),
            ),
        )

    async def cancel_job(self, user_id: int, job_id: str) -> CancelJobResponseDTO:
        job = await self._get_owned_job(user_id, job_id)
        if not job.can_cancel:
            if job.status == JobStatus.SUBMITTED:
                raise CannotCancelJobError(
                    "Cannot cancel job that has been submitted to ML service",
                    {"note": "Job is already being processed by ML service"},
                )
            raise CannotCancelJobError(
                f"Cannot cancel job in status {job.status.value}",
                {"status": job.status.value},
            )

        cancelled = await self.job_repository.cancel_job(job.id)
        logger.info("prediction_job.cancelled", job_id=job.id, user_id=user_id)
        return CancelJobResponseDTO(
            job_id=cancelled.id,
            status=cancelled.status,
            message="Job cancelled successfully",
            cancelled_at=cancelled.updated_at,
        )

    async def list_jobs(
        self,
        user_id: int,
        status: Optional[JobStatus] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> JobListDTO:
        jobs = await self.job_repository.get_jobs_by_user_id(
            user_id, limit=limit, status=status
        )
        summaries: List[JobSummaryDTO] = [
            JobSummaryDTO(
                job_id=job.id,
                status=job.status,
                is_what_if=job.is_what_if,
                prediction_id=job.prediction_id,
                error=job.error,
                created_at=job.created_at,
                updated_at=job.updated_at,
                completed_at=job.completed_at,
            )
            for job in jobs
        ]
        return JobListDTO(jobs=summaries, count=len(summaries))

    async def _ensure_profile_complete(self, user_id: int, what_if: bool) -> None:
        help_text = REQUIRED_WHAT_IF_PROFILE_HELP if what_if else REQUIRED_PROFILE_HELP

        user = await self.user_repository.get_user_by_id(user_id)
        if user is None:
            raise IncompleteProfileError(["user account"], {"help": help_text})

        profile = await self.profile_repository.find_by_user_id(user_id)
        if profile is None:
            raise IncompleteProfileError(["health profile"], {"help": help_text})

        missing = missing_profile_fields(user, profile, what_if=what_if)
        if missing:
            raise IncompleteProfileError(missing, {"help": help_text})

    async def _create_and_enqueue(
        self, user_id: int, what_if: Optional[WhatIfOverride]
    ) -> PredictionJob:
        job = PredictionJob(
            user_id=user_id,
            status=JobStatus.PENDING,
            is_what_if=what_if is not None,
            what_if_input=what_if,
        )
        job = await self.job_repository.save_job(job)

        try:
            await self.job_queue.submit_job(
                JobRequest(job_id=job.id, user_id=user_id, what_if=what_if)
            )
        except JobSubmissionError as exc:
            logger.warning(
                "prediction_job.submit.rejected", job_id=job.id, error=exc.message
            )
            await self.job_repository.update_job_status(
                job.id, JobStatus.FAILED, error=f"Failed to submit job: {exc.message}"
            )
            raise

        logger.info(
            "prediction_job.submitted",
            job_id=job.id,
            user_id=user_id,
            is_what_if=job.is_what_if,
        )
        return job

    async def _get_owned_job(self, user_id: int, job_id: str) -> PredictionJob:
        job = await self.job_repository.get_job_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.user_id != user_id:
            raise JobAccessDeniedError(job_id)
        return job
