"""
Domain Entities Package

Jobs, predictions, user read models, assembled features, health value
objects and the domain error hierarchy.
"""

from .errors import DomainError
from .features import FEATURE_ORDER, AssembledFeatures
from .health import ApplicationInfo, DependencyStatus, ServiceStatus, SystemHealth
from .prediction import (
    EXPLANATION_FEATURES,
    FeatureAttribution,
    Prediction,
    PredictionScore,
)
from .prediction_job import JobRequest, JobStatus, PredictionJob, WhatIfOverride
from .user import Activity, ActivityType, User, UserProfile

__all__ = [
    "DomainError",
    "AssembledFeatures",
    "FEATURE_ORDER",
    "ApplicationInfo",
    "DependencyStatus",
    "ServiceStatus",
    "SystemHealth",
    "EXPLANATION_FEATURES",
    "FeatureAttribution",
    "Prediction",
    "PredictionScore",
    "JobRequest",
    "JobStatus",
    "PredictionJob",
    "WhatIfOverride",
    "Activity",
    "ActivityType",
    "User",
    "UserProfile",
]
