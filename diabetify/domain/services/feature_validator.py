"""Sanity checks applied to a feature vector before it is published."""

from typing import Callable, Sequence, Tuple

from diabetify.domain.entities.errors import FeatureValidationError
from diabetify.domain.entities.features import FEATURE_VECTOR_SIZE

_Rule = Tuple[int, Callable[[float], bool], str]

_RULES: Tuple[_Rule, ...] = (
    (0, lambda v: v > 0, "age must be positive"),
    (1, lambda v: v in (0, 1, 2), "smoking status must be 0, 1, or 2"),
    (2, lambda v: v in (0, 1), "cholesterol status must be 0 or 1"),
    (3, lambda v: v in (0, 1, 2), "macrosomic baby must be 0, 1, or 2"),
    (4, lambda v: v >= 0, "physical activity frequency cannot be negative"),
    (5, lambda v: v in (0, 1), "bloodline status must be 0 or 1"),
    (6, lambda v: v in (0, 1, 2, 3), "brinkman index must be between 0 and 3"),
    (7, lambda v: 10 <= v <= 60, "BMI out of typical range (10-60)"),
    (8, lambda v: v in (0, 1), "hypertension status must be 0 or 1"),
)


def validate_feature_vector(features: Sequence[float]) -> None:
    """Reject vectors the ML service would not accept.

    Raises:
        FeatureValidationError: On the first failing rule, in vector order.
    """
    if len(features) != FEATURE_VECTOR_SIZE:
        raise FeatureValidationError(
            f"incorrect number of features: expected {FEATURE_VECTOR_SIZE}, "
            f"got {len(features)}"
        )
    for index, check, message in _RULES:
        if not check(features[index]):
            raise FeatureValidationError(message, {"index": index})
