"""
Domain Repository Interface - Prediction Job

Persistence contract for prediction jobs. Implementations must perform every
status change as one atomic check-and-set against the transition table in
``diabetify.domain.entities.prediction_job``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from diabetify.domain.entities.prediction_job import JobStatus, PredictionJob


class IPredictionJobRepository(ABC):
    """Interface for prediction job repository."""

    @abstractmethod
    async def save_job(self, job: PredictionJob) -> PredictionJob:
        """Insert a new job; raises JobConflictError on a duplicate id."""
        pass

    @abstractmethod
    async def get_job_by_id(self, job_id: str) -> Optional[PredictionJob]:
        """Get a job by id, None when it does not exist."""
        pass

    @abstractmethod
    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        feature_info: Optional[Dict[str, Any]] = None,
    ) -> PredictionJob:
        """Move a job to ``status``.

        Raises:
            JobNotFoundError: No job with that id.
            InvalidJobTransitionError: The current status does not allow it.
        """
        pass

    @abstractmethod
    async def update_job_status_with_result(
        self, job_id: str, status: JobStatus, prediction_id: int
    ) -> PredictionJob:
        """Complete a job and attach the prediction it produced."""
        pass

    @abstractmethod
    async def cancel_job(self, job_id: str) -> PredictionJob:
        """Cancel a pending or processing job; raises CannotCancelJobError otherwise."""
        pass

    @abstractmethod
    async def get_pending_jobs(self, limit: int) -> List[PredictionJob]:
        """Oldest pending jobs first."""
        pass

    @abstractmethod
    async def get_jobs_by_user_id(
        self, user_id: int, limit: int, status: Optional[JobStatus] = None
    ) -> List[PredictionJob]:
        """Newest jobs of a user first, optionally filtered by status."""
        pass

    @abstractmethod
    async def cleanup_old_jobs(self, older_than: datetime) -> int:
        """Delete terminal jobs last updated before ``older_than``."""
        pass
