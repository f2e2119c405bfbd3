"""DTOs for the prediction job HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from diabetify.domain.entities.prediction import Prediction
from diabetify.domain.entities.prediction_job import JobStatus, WhatIfOverride


class WhatIfInputDTO(BaseModel):
    """Hypothetical values for a what-if prediction."""

    smoking_status: int = Field(
        ..., ge=0, le=2, description="0 never, 1 former, 2 current smoker"
    )
    avg_smoke_count: int = Field(..., ge=0, description="Cigarettes per day")
    weight: float = Field(..., ge=1, description="Body weight in kilograms")
    is_hypertension: bool = Field(..., description="Hypertension diagnosis")
    is_cholesterol: bool = Field(..., description="High cholesterol diagnosis")
    physical_activity_frequency: int = Field(
        ..., ge=0, description="Moderate workout sessions per week"
    )

    def to_domain(self) -> WhatIfOverride:
        return WhatIfOverride(**self.model_dump())

    model_config = {
        "json_schema_extra": {
            "example": {
                "smoking_status": 0,
                "avg_smoke_count": 0,
                "weight": 72.5,
                "is_hypertension": False,
                "is_cholesterol": False,
                "physical_activity_frequency": 4,
            }
        }
    }


class SubmitJobResponseDTO(BaseModel):
    """202 payload returned when a job is accepted."""

    job_id: str = Field(description="Identifier to poll")
    status: JobStatus = Field(description="Always pending on acceptance")
    message: str = Field(description="Human readable note")
    submit_time: datetime = Field(description="Acceptance time")
    poll_url: str = Field(description="Relative URL of the status endpoint")
    input_used: Optional[WhatIfInputDTO] = Field(
        default=None, description="Echo of the what-if override"
    )


class JobResultSummaryDTO(BaseModel):
    prediction_id: int
    risk_score: float
    risk_percentage: float
    created_at: datetime


class JobStatusDTO(BaseModel):
    """Payload of GET /prediction/job/{id}/status."""

    job_id: str
    status: JobStatus
    is_what_if: bool
    message: str
    note: Optional[str] = None
    error: Optional[str] = None
    result: Optional[JobResultSummaryDTO] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class JobSummaryDTO(BaseModel):
    job_id: str
    status: JobStatus
    is_what_if: bool
    prediction_id: Optional[int] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class JobListDTO(BaseModel):
    jobs: List[JobSummaryDTO] = Field(default_factory=list)
    count: int = Field(description="Number of jobs returned")


class CancelJobResponseDTO(BaseModel):
    job_id: str
    status: JobStatus
    message: str
    cancelled_at: datetime


class FeatureExplanationDTO(BaseModel):
    shap: float
    contribution: float
    impact: int


class JobInfoDTO(BaseModel):
    completed_at: Optional[datetime] = None
    processing_time: str = Field(description="Seconds from submission to completion")


class PredictionResultDTO(BaseModel):
    """Stored result of a completed canonical job."""

    job_id: str
    prediction_id: int
    risk_score: float
    risk_percentage: float
    timestamp: datetime
    user_data_used: Dict[str, Any] = Field(default_factory=dict)
    feature_explanations: Dict[str, FeatureExplanationDTO] = Field(
        default_factory=dict
    )
    job_info: JobInfoDTO


class MLConnectionStatusDTO(BaseModel):
    """Payload of GET /prediction/health."""

    status: str = Field(description="healthy or unhealthy")
    message: str
    health_check: str = Field(description="message_sent or failed_to_send")
    correlation_id: Optional[str] = None
    worker_status: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class PredictionDTO(BaseModel):
    """One stored prediction with its inputs and attributions."""

    id: int
    job_id: Optional[str] = None
    risk_score: float
    risk_percentage: float
    user_data_used: Dict[str, Any] = Field(default_factory=dict)
    feature_explanations: Dict[str, FeatureExplanationDTO] = Field(
        default_factory=dict
    )
    created_at: datetime

    @classmethod
    def from_domain(cls, prediction: Prediction) -> "PredictionDTO":
        return cls(
            id=prediction.id,
            job_id=prediction.job_id,
            risk_score=prediction.risk_score,
            risk_percentage=prediction.risk_percentage,
            user_data_used=prediction_user_data(prediction),
            feature_explanations=prediction_explanations(prediction),
            created_at=prediction.created_at,
        )


class PredictionListDTO(BaseModel):
    predictions: List[PredictionDTO] = Field(default_factory=list)
    count: int = Field(description="Number of predictions returned")


class PredictionScoreDTO(BaseModel):
    risk_score: float
    created_at: datetime


class PredictionScoreListDTO(BaseModel):
    """Latest risk score per day inside the requested range, newest first."""

    scores: List[PredictionScoreDTO] = Field(default_factory=list)
    count: int


class DeletePredictionResponseDTO(BaseModel):
    prediction_id: int
    message: str


def prediction_user_data(prediction: Prediction) -> Dict[str, Any]:
    return {
        "age": prediction.age,
        "bmi": prediction.bmi,
        "brinkman_score": prediction.brinkman_score,
        "smoking_status": prediction.smoking_status,
        "is_macrosomic_baby": prediction.is_macrosomic_baby,
        "is_hypertension": prediction.is_hypertension,
        "is_cholesterol": prediction.is_cholesterol,
        "is_bloodline": prediction.is_bloodline,
        "physical_activity_frequency": prediction.physical_activity_frequency,
        "avg_smoke_count": prediction.avg_smoke_count,
    }


def prediction_explanations(prediction: Prediction) -> Dict[str, FeatureExplanationDTO]:
    return {
        name: FeatureExplanationDTO(
            shap=attribution.shap,
            contribution=attribution.contribution,
            impact=int(attribution.impact),
        )
        for name, attribution in prediction.attributions.items()
    }
