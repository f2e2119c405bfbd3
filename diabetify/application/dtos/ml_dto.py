"""Wire envelopes exchanged with the ML service over RabbitMQ."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from diabetify.domain.entities.errors import MalformedResponseError
from diabetify.domain.entities.prediction import EXPLANATION_FEATURES, FeatureAttribution

# Explanation key -> (info key, cast) used when the job has no stored info map.
_EXPLANATION_VALUE_FIELDS = {
    "age": ("age", int),
    "smoking_status": ("smoking_status", int),
    "is_cholesterol": ("is_cholesterol", lambda v: v == 1),
    "is_bloodline": ("is_bloodline", lambda v: v == 1),
    "is_hypertension": ("is_hypertension", lambda v: v == 1),
    "is_macrosomic_baby": ("is_macrosomic_baby", int),
    "moderate_physical_activity_frequency": ("physical_activity_frequency", int),
    "brinkman_index": ("brinkman_score", int),
    "BMI": ("bmi", float),
}

_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S",
)

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_ml_timestamp(value: Any, now: Optional[datetime] = None) -> datetime:
    """Parse the timestamps the ML service emits; falls back to ``now``.

    Naive values are taken as UTC. Fractions longer than microseconds are
    truncated so nanosecond precision strings still parse.
    """
    fallback = now or datetime.now(timezone.utc)
    if not isinstance(value, str) or not value:
        return fallback

    normalized = _EXCESS_FRACTION.sub(r"\1", value.strip())
    for fmt in _TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(normalized, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return fallback


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


class PredictionRequestEnvelope(BaseModel):
    """Body published to the prediction request queue."""

    features: List[float] = Field(description="Nine features in wire order")
    correlation_id: str = Field(description="Job id used to route the reply")
    timestamp: datetime = Field(description="Publish time")

    def to_body(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


class HealthCheckEnvelope(BaseModel):
    correlation_id: str
    timestamp: datetime

    def to_body(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


class MLResponseEnvelope(BaseModel):
    """Body consumed from the response queue. Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    correlation_id: str = ""
    prediction: Optional[float] = None
    explanation: Dict[str, Any] = Field(default_factory=dict)
    elapsed_time: Optional[float] = None
    timestamp: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def parse(cls, body: bytes) -> "MLResponseEnvelope":
        """
        Raises:
            MalformedResponseError: Invalid JSON, wrong field types or no
                correlation id.
        """
        try:
            envelope = cls.model_validate_json(body)
        except ValidationError as exc:
            raise MalformedResponseError(
                "Failed to parse ML response", {"errors": exc.errors(include_url=False)}
            ) from exc
        if not envelope.correlation_id:
            raise MalformedResponseError("ML response has no correlation_id")
        return envelope

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    def parsed_timestamp(self, now: Optional[datetime] = None) -> datetime:
        return parse_ml_timestamp(self.timestamp, now)

    def _item(self, name: str) -> Dict[str, Any]:
        item = self.explanation.get(name)
        return item if isinstance(item, dict) else {}

    def attributions(self) -> Dict[str, FeatureAttribution]:
        """All nine attributions; absent features default to zeros."""
        result: Dict[str, FeatureAttribution] = {}
        for name in EXPLANATION_FEATURES:
            item = self._item(name)
            result[name] = FeatureAttribution(
                shap=_as_float(item.get("shap")),
                contribution=_as_float(item.get("contribution")),
                impact=_as_float(item.get("impact")),
            )
        return result

    def feature_values(self) -> Dict[str, Any]:
        """Input values echoed by the ML service, keyed like the info map."""
        values: Dict[str, Any] = {}
        for name, (info_key, cast) in _EXPLANATION_VALUE_FIELDS.items():
            raw = self._item(name).get("value")
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                continue
            values[info_key] = cast(raw)
        return values
