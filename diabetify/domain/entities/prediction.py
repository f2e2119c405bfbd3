"""Prediction entity persisted for completed canonical jobs."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

# Feature names as they appear in the ML service's explanation map.
EXPLANATION_FEATURES = (
    "age",
    "BMI",
    "brinkman_index",
    "is_hypertension",
    "is_cholesterol",
    "is_bloodline",
    "is_macrosomic_baby",
    "smoking_status",
    "moderate_physical_activity_frequency",
)


@dataclass
class FeatureAttribution:
    """Per-feature explanation scalars returned by the ML service."""

    shap: float = 0.0
    contribution: float = 0.0
    impact: float = 0.0


@dataclass
class Prediction:
    """Immutable result row; written once, never updated by the orchestrator."""

    user_id: int
    risk_score: float
    job_id: Optional[str] = None
    id: Optional[int] = None
    age: int = 0
    bmi: float = 0.0
    brinkman_score: int = 0
    smoking_status: int = 0
    is_macrosomic_baby: int = 0
    is_hypertension: bool = False
    is_cholesterol: bool = False
    is_bloodline: bool = False
    physical_activity_frequency: int = 0
    avg_smoke_count: int = 0
    attributions: Dict[str, FeatureAttribution] = field(
        default_factory=lambda: {
            name: FeatureAttribution() for name in EXPLANATION_FEATURES
        }
    )
    explanations: Dict[str, Optional[str]] = field(default_factory=dict)
    summary: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def risk_percentage(self) -> float:
        return self.risk_score * 100


@dataclass
class PredictionScore:
    """Risk score of the latest prediction on one calendar day."""

    risk_score: float
    created_at: datetime
