"""
Domain Errors

Every failure the orchestrator reports to a caller, or records on a job, is
one of these exceptions. Adapters translate library errors into them at the
infrastructure boundary.
"""

from typing import Any, Dict, List, Optional, Sequence


class DomainError(Exception):
    """Base class for domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(DomainError):
    """Raised when a bearer token is missing, invalid or carries no user."""


class IncompleteProfileError(DomainError):
    """Raised when the stored user or profile misses a required field."""

    def __init__(
        self, missing_fields: Sequence[str], details: Optional[Dict[str, Any]] = None
    ):
        self.missing_fields: List[str] = list(missing_fields)
        message = ", ".join(f"{field} is required" for field in self.missing_fields)
        super().__init__(message, details)


class InvalidWhatIfInputError(DomainError):
    """Raised when a what-if override payload fails validation."""


class JobSubmissionError(DomainError):
    """Raised when a job request cannot be handed to the worker pool."""


class QueueFullError(JobSubmissionError):
    """Raised when the in-process queue stays full for the whole wait window."""

    def __init__(self, message: str = "job queue is full, try again later"):
        super().__init__(message)


class WorkerNotRunningError(JobSubmissionError):
    """Raised when a job is submitted while the worker pool is stopped."""

    def __init__(self, message: str = "job worker is not running"):
        super().__init__(message)


class BusUnavailableError(DomainError):
    """Raised when the message broker cannot be reached or publishing fails."""


class FeatureValidationError(DomainError):
    """Raised when a feature vector is rejected before publishing."""


class FeatureAssemblyError(DomainError):
    """Raised when the stored data cannot be turned into a feature vector."""


class MLServiceError(DomainError):
    """Raised for error or incomplete payloads returned by the ML service."""


class MalformedResponseError(DomainError):
    """Raised when a response message cannot be parsed."""


class JobNotFoundError(DomainError):
    """Raised when a job cannot be found."""

    def __init__(self, job_id: str, details: Optional[Dict[str, Any]] = None):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", details)


class JobAccessDeniedError(DomainError):
    """Raised when a caller touches a job owned by another user."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Access denied: job belongs to another user")


class JobConflictError(DomainError):
    """Raised when a job id is already taken."""


class PredictionConflictError(DomainError):
    """Raised when a prediction already exists for a job."""


class PredictionNotFoundError(DomainError):
    """Raised when a prediction cannot be found."""

    def __init__(self, prediction_id: int):
        self.prediction_id = prediction_id
        super().__init__(f"Prediction {prediction_id} not found")


class PredictionAccessDeniedError(DomainError):
    """Raised when a caller touches a prediction owned by another user."""

    def __init__(self, prediction_id: int):
        self.prediction_id = prediction_id
        super().__init__("Access denied: prediction belongs to a different user")


class InvalidDateRangeError(DomainError):
    """Raised when a history date filter cannot be parsed."""


class InvalidJobTransitionError(DomainError):
    """Raised when a status change is not allowed from the job's current status."""

    def __init__(self, job_id: str, current: Any, target: Any):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move job {job_id} from {getattr(current, 'value', current)} "
            f"to {getattr(target, 'value', target)}"
        )


class CannotCancelJobError(DomainError):
    """Raised when cancellation is requested for a job past the cancel window."""


class JobNotCompletedError(DomainError):
    """Raised when a result is requested before the job completed."""

    def __init__(self, job_id: str, status: Any):
        self.job_id = job_id
        self.status = status
        super().__init__(
            "Job is not completed yet. Current status: "
            f"{getattr(status, 'value', status)}"
        )


class WhatIfResultExpiredError(DomainError):
    """Raised when a completed what-if job's cached result is gone."""

    def __init__(self, job_id: str, ttl_seconds: int):
        self.job_id = job_id
        self.ttl_seconds = ttl_seconds
        super().__init__("What-if result has expired or not found")


class CacheUnavailableError(DomainError):
    """Raised when the what-if result cache cannot be reached."""


class PredictionPersistenceError(DomainError):
    """Raised when a prediction row cannot be written."""
