"""
User-side read models.

Users, profiles and activities are owned by the wider Diabetify platform; the
orchestrator only reads them (and stamps ``last_prediction_at``).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ActivityType(str, Enum):
    SMOKE = "smoke"
    WORKOUT = "workout"


@dataclass
class User:
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    # Either a calendar date ("YYYY-MM-DD") or an RFC 3339 timestamp.
    dob: Optional[str] = None
    last_prediction_at: Optional[datetime] = None


@dataclass
class UserProfile:
    """Health profile; every clinical field is optional until filled in."""

    user_id: int
    height: Optional[float] = None
    weight: Optional[float] = None
    bmi: Optional[float] = None
    age_of_smoking: Optional[int] = None
    age_of_stop_smoking: Optional[int] = None
    smoke_count: Optional[int] = None
    physical_activity_frequency: Optional[int] = None
    macrosomic_baby: Optional[int] = None
    bloodline: Optional[bool] = None
    hypertension: Optional[bool] = None
    cholesterol: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Activity:
    user_id: int
    activity_type: ActivityType
    value: int
    activity_date: datetime
