"""
Application Use Case - Response Correlation

Matches each ML response to its job by ``correlation_id``. Only jobs in
``submitted`` are acted on, so redelivered or late responses are dropped
without side effects.
"""

import structlog

from diabetify.application.dtos.ml_dto import MLResponseEnvelope
from diabetify.application.use_cases.result_routing_use_case import (
    ResultRouter,
    RoutingOutcome,
)
from diabetify.domain.entities.errors import (
    InvalidJobTransitionError,
    JobNotFoundError,
    MalformedResponseError,
)
from diabetify.domain.entities.prediction_job import JobStatus, can_transition
from diabetify.domain.repositories.prediction_job_repository import (
    IPredictionJobRepository,
)

logger = structlog.get_logger(__name__)


class ResponseCorrelator:
    def __init__(
        self, job_repository: IPredictionJobRepository, result_router: ResultRouter
    ):
        self.job_repository = job_repository
        self.result_router = result_router

    async def handle(self, body: bytes) -> RoutingOutcome:
        """Process one delivery; REJECTED means the message should be dropped."""
        try:
            envelope = MLResponseEnvelope.parse(body)
        except MalformedResponseError as exc:
            logger.warning(
                "response_correlator.message.rejected",
                error=exc.message,
                size=len(body),
            )
            return RoutingOutcome.REJECTED

        job_id = envelope.correlation_id
        job = await self.job_repository.get_job_by_id(job_id)
        if job is None:
            logger.info("response_correlator.job.unknown", job_id=job_id)
            return RoutingOutcome.IGNORED
        if job.is_terminal:
            logger.info(
                "response_correlator.job.already_finished",
                job_id=job_id,
                status=job.status.value,
            )
            return RoutingOutcome.IGNORED
        if not can_transition(job.status, JobStatus.COMPLETED):
            logger.info(
                "response_correlator.job.not_submitted",
                job_id=job_id,
                status=job.status.value,
            )
            return RoutingOutcome.IGNORED

        if envelope.has_error:
            try:
                await self.job_repository.update_job_status(
                    job_id, JobStatus.FAILED, error=envelope.error
                )
            except (InvalidJobTransitionError, JobNotFoundError) as exc:
                logger.info(
                    "response_correlator.fail.skipped", job_id=job_id, reason=exc.message
                )
                return RoutingOutcome.IGNORED
            logger.warning(
                "response_correlator.ml_error", job_id=job_id, error=envelope.error
            )
            return RoutingOutcome.FAILED

        return await self.result_router.route(job, envelope)
