"""
Application Use Case - Result Routing

Turns a successful ML response for a ``submitted`` job into its final
artefact: a cached what-if map, or a persisted Prediction for canonical jobs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog

from diabetify.application.dtos.ml_dto import MLResponseEnvelope
from diabetify.domain.entities.errors import (
    CacheUnavailableError,
    InvalidJobTransitionError,
    JobNotFoundError,
    PredictionConflictError,
    PredictionPersistenceError,
)
from diabetify.domain.entities.prediction import Prediction
from diabetify.domain.entities.prediction_job import JobStatus, PredictionJob
from diabetify.domain.ports.result_cache import IWhatIfResultCache
from diabetify.domain.repositories.prediction_job_repository import (
    IPredictionJobRepository,
)
from diabetify.domain.repositories.prediction_repository import IPredictionRepository
from diabetify.domain.repositories.user_repository import IUserRepository

logger = structlog.get_logger(__name__)


class RoutingOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    IGNORED = "ignored"
    REJECTED = "rejected"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _explanation_map(envelope: MLResponseEnvelope) -> Dict[str, Dict[str, Any]]:
    return {
        name: {
            "shap": attribution.shap,
            "contribution": attribution.contribution,
            "impact": int(attribution.impact),
        }
        for name, attribution in envelope.attributions().items()
    }


class ResultRouter:
    """Routes a parsed response to the cache or the prediction store."""

    def __init__(
        self,
        job_repository: IPredictionJobRepository,
        prediction_repository: IPredictionRepository,
        user_repository: IUserRepository,
        what_if_cache: IWhatIfResultCache,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.job_repository = job_repository
        self.prediction_repository = prediction_repository
        self.user_repository = user_repository
        self.what_if_cache = what_if_cache
        self._clock = clock or _utc_now

    async def route(
        self, job: PredictionJob, envelope: MLResponseEnvelope
    ) -> RoutingOutcome:
        if envelope.prediction is None:
            return await self._fail(
                job.id, "ML service returned no prediction and no error"
            )
        if job.is_what_if:
            return await self._route_what_if(job, envelope)
        return await self._route_canonical(job, envelope)

    def _user_data(self, job: PredictionJob, envelope: MLResponseEnvelope) -> Dict[str, Any]:
        if job.feature_info:
            return dict(job.feature_info)
        return envelope.feature_values()

    async def _route_what_if(
        self, job: PredictionJob, envelope: MLResponseEnvelope
    ) -> RoutingOutcome:
        now = self._clock()
        risk_score = float(envelope.prediction or 0.0)
        result: Dict[str, Any] = {
            "job_id": job.id,
            "job_type": "what_if",
            "risk_score": risk_score,
            "risk_percentage": risk_score * 100,
            "user_data_used": self._user_data(job, envelope),
            "input_used": job.what_if_input.to_dict() if job.what_if_input else None,
            "feature_explanations": _explanation_map(envelope),
            "timestamp": envelope.parsed_timestamp(now).isoformat(),
            "processing_time": f"{(now - job.created_at).total_seconds():.3f}s",
        }

        try:
            await self.what_if_cache.store_result(job.id, result)
        except CacheUnavailableError as exc:
            logger.warning(
                "result_router.what_if.cache_write_failed",
                job_id=job.id,
                error=exc.message,
            )

        return await self._complete(job.id, prediction_id=None)

    async def _route_canonical(
        self, job: PredictionJob, envelope: MLResponseEnvelope
    ) -> RoutingOutcome:
        values = self._user_data(job, envelope)
        prediction = Prediction(
            user_id=job.user_id,
            job_id=job.id,
            risk_score=float(envelope.prediction or 0.0),
            age=int(values.get("age", 0)),
            bmi=float(values.get("bmi", 0.0)),
            brinkman_score=int(values.get("brinkman_score", 0)),
            smoking_status=int(values.get("smoking_status", 0)),
            is_macrosomic_baby=int(values.get("is_macrosomic_baby", 0)),
            is_hypertension=bool(values.get("is_hypertension", False)),
            is_cholesterol=bool(values.get("is_cholesterol", False)),
            is_bloodline=bool(values.get("is_bloodline", False)),
            physical_activity_frequency=int(
                values.get("physical_activity_frequency", 0)
            ),
            avg_smoke_count=int(values.get("avg_smoke_count", 0)),
            attributions=envelope.attributions(),
            created_at=envelope.parsed_timestamp(self._clock()),
        )

        try:
            prediction = await self.prediction_repository.save_prediction(prediction)
        except PredictionConflictError:
            logger.info("result_router.prediction.duplicate", job_id=job.id)
            existing = await self.prediction_repository.get_prediction_by_job_id(job.id)
            if existing is None:
                return RoutingOutcome.IGNORED
            return await self._complete(job.id, prediction_id=existing.id)
        except PredictionPersistenceError as exc:
            return await self._fail(job.id, f"Failed to save prediction: {exc.message}")

        try:
            await self.user_repository.update_last_prediction_time(
                job.user_id, self._clock()
            )
        except Exception as exc:
            logger.warning(
                "result_router.user.touch_failed", user_id=job.user_id, error=str(exc)
            )

        return await self._complete(job.id, prediction_id=prediction.id)

    async def _complete(
        self, job_id: str, prediction_id: Optional[int]
    ) -> RoutingOutcome:
        try:
            if prediction_id is None:
                await self.job_repository.update_job_status(job_id, JobStatus.COMPLETED)
            else:
                await self.job_repository.update_job_status_with_result(
                    job_id, JobStatus.COMPLETED, prediction_id
                )
        except (InvalidJobTransitionError, JobNotFoundError) as exc:
            logger.info("result_router.complete.skipped", job_id=job_id, reason=exc.message)
            return RoutingOutcome.IGNORED
        except Exception as exc:
            logger.error(
                "result_router.complete.write_failed", job_id=job_id, error=str(exc)
            )
            return RoutingOutcome.FAILED
        logger.info("result_router.job.completed", job_id=job_id, prediction_id=prediction_id)
        return RoutingOutcome.COMPLETED

    async def _fail(self, job_id: str, error: str) -> RoutingOutcome:
        try:
            await self.job_repository.update_job_status(
                job_id, JobStatus.FAILED, error=error
            )
        except (InvalidJobTransitionError, JobNotFoundError) as exc:
            logger.info("result_router.fail.skipped", job_id=job_id, reason=exc.message)
            return RoutingOutcome.IGNORED
        logger.warning("result_router.job.failed", job_id=job_id, error=error)
        return RoutingOutcome.FAILED

