"""Assembled model inputs and their wire order."""

from dataclasses import dataclass
from typing import Any, Dict, List

FEATURE_VECTOR_SIZE = 9

# Position i of the published vector carries FEATURE_ORDER[i].
FEATURE_ORDER = (
    "age",
    "smoking_status",
    "is_cholesterol",
    "is_macrosomic_baby",
    "physical_activity_frequency",
    "is_bloodline",
    "brinkman_index",
    "bmi",
    "is_hypertension",
)


@dataclass(frozen=True)
class AssembledFeatures:
    """Output of the feature assembler: typed values plus the Brinkman input."""

    age: int
    smoking_status: int
    is_cholesterol: bool
    is_macrosomic_baby: int
    physical_activity_frequency: int
    is_bloodline: bool
    brinkman_index: int
    bmi: float
    is_hypertension: bool
    avg_smoke_count: int

    def to_vector(self) -> List[float]:
        """Ordered float vector published to the ML service."""
        return [float(self.named_values()[name]) for name in FEATURE_ORDER]

    def named_values(self) -> Dict[str, Any]:
        return {
            "age": self.age,
            "smoking_status": self.smoking_status,
            "is_cholesterol": self.is_cholesterol,
            "is_macrosomic_baby": self.is_macrosomic_baby,
            "physical_activity_frequency": self.physical_activity_frequency,
            "is_bloodline": self.is_bloodline,
            "brinkman_index": self.brinkman_index,
            "bmi": self.bmi,
            "is_hypertension": self.is_hypertension,
        }

    def to_info(self) -> Dict[str, Any]:
        """Human-facing info map stored on the job and echoed in results."""
        return {
            "age": self.age,
            "smoking_status": self.smoking_status,
            "is_macrosomic_baby": self.is_macrosomic_baby,
            "brinkman_score": self.brinkman_index,
            "bmi": self.bmi,
            "is_hypertension": self.is_hypertension,
            "is_cholesterol": self.is_cholesterol,
            "is_bloodline": self.is_bloodline,
            "physical_activity_frequency": self.physical_activity_frequency,
            "avg_smoke_count": self.avg_smoke_count,
        }
