"""
Infrastructure Repository - Prediction Job MongoDB Implementation

Status changes are single ``find_one_and_update`` calls filtered on the legal
predecessor statuses, so two writers racing on the same job cannot both win.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from diabetify.domain.entities.errors import (
    CannotCancelJobError,
    InvalidJobTransitionError,
    JobConflictError,
    JobNotFoundError,
)
from diabetify.domain.entities.prediction_job import (
    TERMINAL_STATUSES,
    JobStatus,
    PredictionJob,
    WhatIfOverride,
    allowed_predecessors,
)
from diabetify.domain.repositories.prediction_job_repository import (
    IPredictionJobRepository,
)
from diabetify.infrastructure.database.mongo_database import (
    JOBS_COLLECTION,
    MongoDatabase,
)
from diabetify.infrastructure.repositories._documents import (
    as_datetime,
    as_optional_int,
)

logger = structlog.get_logger(__name__)


class PredictionJobRepository(IPredictionJobRepository):
    """MongoDB implementation of the prediction job repository."""

    def __init__(self, database: MongoDatabase):
        self.database = database
        self.collection_name = JOBS_COLLECTION

    async def save_job(self, job: PredictionJob) -> PredictionJob:
        try:
            collection = self.database.get_collection(self.collection_name)
            collection.insert_one(self._to_document(job))
            logger.info("Prediction job created", job_id=job.id, user_id=job.user_id)
            return job
        except DuplicateKeyError as e:
            raise JobConflictError(f"Job {job.id} already exists") from e
        except PyMongoError as e:
            logger.error("Failed to create prediction job", job_id=job.id, error=str(e))
            raise e

    async def get_job_by_id(self, job_id: str) -> Optional[PredictionJob]:
        try:
            collection = self.database.get_collection(self.collection_name)
            document = collection.find_one({"id": job_id})
            return self._from_document(document) if document else None
        except PyMongoError as e:
            logger.error("Failed to get prediction job", job_id=job_id, error=str(e))
            raise e

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        feature_info: Optional[Dict[str, Any]] = None,
    ) -> PredictionJob:
        fields: Dict[str, Any] = {}
        if error is not None:
            fields["error"] = error
        if feature_info is not None:
            fields["feature_info"] = feature_info
        return await self._transition(job_id, status, fields)

    async def update_job_status_with_result(
        self, job_id: str, status: JobStatus, prediction_id: int
    ) -> PredictionJob:
        if status != JobStatus.COMPLETED:
            raise InvalidJobTransitionError(job_id, "result", status)
        return await self._transition(job_id, status, {"prediction_id": prediction_id})

    async def cancel_job(self, job_id: str) -> PredictionJob:
        try:
            return await self._transition(job_id, JobStatus.CANCELLED, {})
        except InvalidJobTransitionError as e:
            if e.current == JobStatus.SUBMITTED:
                raise CannotCancelJobError(
                    "Cannot cancel job that has been submitted to ML service"
                ) from e
            raise CannotCancelJobError(
                f"Cannot cancel job in status {getattr(e.current, 'value', e.current)}"
            ) from e

    async def get_pending_jobs(self, limit: int) -> List[PredictionJob]:
        try:
            collection = self.database.get_collection(self.collection_name)
            cursor = (
                collection.find({"status": JobStatus.PENDING.value})
                .sort("created_at", 1)
                .limit(limit)
            )
            return [self._from_document(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to get pending prediction jobs", error=str(e))
            raise e

    async def get_jobs_by_user_id(
        self, user_id: int, limit: int, status: Optional[JobStatus] = None
    ) -> List[PredictionJob]:
        query: Dict[str, Any] = {"user_id": user_id}
        if status is not None:
            query["status"] = status.value
        try:
            collection = self.database.get_collection(self.collection_name)
            cursor = collection.find(query).sort("created_at", -1).limit(limit)
            return [self._from_document(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error(
                "Failed to list prediction jobs", user_id=user_id, error=str(e)
            )
            raise e

    async def cleanup_old_jobs(self, older_than: datetime) -> int:
        try:
            collection = self.database.get_collection(self.collection_name)
            result = collection.delete_many(
                {
                    "status": {"$in": [s.value for s in TERMINAL_STATUSES]},
                    "updated_at": {"$lt": older_than},
                }
            )
            if result.deleted_count:
                logger.info(
                    "Old prediction jobs removed",
                    deleted=result.deleted_count,
                    cutoff=older_than.isoformat(),
                )
            return result.deleted_count
        except PyMongoError as e:
            logger.error("Failed to clean up prediction jobs", error=str(e))
            raise e

    async def _transition(
        self, job_id: str, status: JobStatus, fields: Dict[str, Any]
    ) -> PredictionJob:
        now = datetime.now(timezone.utc)
        update = {"status": status.value, "updated_at": now, **fields}
        if status in TERMINAL_STATUSES:
            update["completed_at"] = now
        predecessors = allowed_predecessors(status)

        try:
            collection = self.database.get_collection(self.collection_name)
            document = collection.find_one_and_update(
                {"id": job_id, "status": {"$in": [s.value for s in predecessors]}},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
            if document is None:
                current = collection.find_one({"id": job_id})
                if current is None:
                    raise JobNotFoundError(job_id)
                raise InvalidJobTransitionError(
                    job_id, JobStatus(current["status"]), status
                )
        except PyMongoError as e:
            logger.error(
                "Failed to update prediction job status",
                job_id=job_id,
                status=status.value,
                error=str(e),
            )
            raise e

        logger.info("Prediction job status updated", job_id=job_id, status=status.value)
        return self._from_document(document)

    def _to_document(self, job: PredictionJob) -> Dict[str, Any]:
        return {
            "id": job.id,
            "user_id": job.user_id,
            "status": job.status.value,
            "is_what_if": job.is_what_if,
            "prediction_id": job.prediction_id,
            "error": job.error,
            "what_if_input": job.what_if_input.to_dict() if job.what_if_input else None,
            "feature_info": job.feature_info,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
            "completed_at": job.completed_at,
        }

    def _from_document(self, document: Dict[str, Any]) -> PredictionJob:
        what_if = document.get("what_if_input")
        return PredictionJob(
            id=document["id"],
            user_id=int(document["user_id"]),
            status=JobStatus(document["status"]),
            is_what_if=bool(document.get("is_what_if", False)),
            prediction_id=as_optional_int(document.get("prediction_id")),
            error=document.get("error"),
            what_if_input=WhatIfOverride.from_dict(what_if) if what_if else None,
            feature_info=document.get("feature_info"),
            created_at=as_datetime(document["created_at"]),
            updated_at=as_datetime(document["updated_at"]),
            completed_at=as_datetime(document.get("completed_at")),
        )
