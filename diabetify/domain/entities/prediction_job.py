"""
Prediction job entity.

A job is the durable unit of work behind one prediction request. Its status
only ever moves along the edges in ``_ALLOWED_TRANSITIONS``; the repository
enforces the same table atomically.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import uuid4


class JobStatus(str, Enum):
    """Lifecycle states of a prediction job."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

CANCELLABLE_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.PENDING, JobStatus.PROCESSING}
)

_ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset(
        {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.SUBMITTED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.SUBMITTED: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True when ``current -> target`` is a legal edge."""
    return target in _ALLOWED_TRANSITIONS[current]


def allowed_predecessors(target: JobStatus) -> List[JobStatus]:
    """Statuses from which ``target`` may be reached, in declaration order."""
    return [
        status for status, targets in _ALLOWED_TRANSITIONS.items() if target in targets
    ]


@dataclass
class WhatIfOverride:
    """Hypothetical values that replace stored profile data for one job."""

    smoking_status: int
    avg_smoke_count: int
    weight: float
    is_hypertension: bool
    is_cholesterol: bool
    physical_activity_frequency: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "smoking_status": self.smoking_status,
            "avg_smoke_count": self.avg_smoke_count,
            "weight": self.weight,
            "is_hypertension": self.is_hypertension,
            "is_cholesterol": self.is_cholesterol,
            "physical_activity_frequency": self.physical_activity_frequency,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WhatIfOverride":
        return cls(
            smoking_status=int(data["smoking_status"]),
            avg_smoke_count=int(data["avg_smoke_count"]),
            weight=float(data["weight"]),
            is_hypertension=bool(data["is_hypertension"]),
            is_cholesterol=bool(data["is_cholesterol"]),
            physical_activity_frequency=int(data["physical_activity_frequency"]),
        )


@dataclass
class JobRequest:
    """In-memory queue item handed to a worker."""

    job_id: str
    user_id: int
    what_if: Optional[WhatIfOverride] = None

    @property
    def is_what_if(self) -> bool:
        return self.what_if is not None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PredictionJob:
    """Durable record of one prediction request."""

    id: str = field(default_factory=lambda: str(uuid4()))
    user_id: int = 0
    status: JobStatus = JobStatus.PENDING
    is_what_if: bool = False
    prediction_id: Optional[int] = None
    error: Optional[str] = None
    what_if_input: Optional[WhatIfOverride] = None
    feature_info: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_cancel(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def to_request(self) -> JobRequest:
        """Rebuild the queue item, e.g. when recovering pending jobs."""
        return JobRequest(
            job_id=self.id, user_id=self.user_id, what_if=self.what_if_input
        )

    def processing_time(self, now: Optional[datetime] = None) -> float:
        """Seconds between creation and completion (or ``now``)."""
        end = self.completed_at or now or _utc_now()
        return max(0.0, (end - self.created_at).total_seconds())
