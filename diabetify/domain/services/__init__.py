"""Pure domain services."""

from .feature_assembler import FeatureAssembler, SmokingStatus, missing_profile_fields
from .feature_validator import validate_feature_vector

__all__ = [
    "FeatureAssembler",
    "SmokingStatus",
    "missing_profile_fields",
    "validate_feature_vector",
]
