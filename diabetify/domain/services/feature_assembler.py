"""
Feature assembler.

Turns a user, their health profile and activity history into the nine model
inputs. Every function here is pure; the only source of time is the clock
injected into ``FeatureAssembler``.

Derivation rules:

* age: whole years since the date of birth, one less when today's
  day-of-year is still before the birthday's day-of-year.
* smoking status: decision table over (start age set, stop age set, any
  smoke activity in the last eight weeks, age past the stop age).
* average cigarettes per day: the profile value when positive, otherwise
  the logged total spread over the smoking period or the logged span.
* Brinkman index: smoking years times the daily average, bucketed 0..3.
* physical activity: workout sessions in the last seven days once the
  profile is older than that window, otherwise the profile's own value.

In what-if mode the override replaces smoking status, the daily average,
hypertension, cholesterol and activity, and BMI is recomputed from the
override weight and the stored height.
"""

import math
from datetime import date, datetime, timedelta, timezone
from enum import IntEnum
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from diabetify.domain.entities.errors import IncompleteProfileError
from diabetify.domain.entities.features import AssembledFeatures
from diabetify.domain.entities.prediction_job import WhatIfOverride
from diabetify.domain.entities.user import Activity, User, UserProfile

SMOKING_LOOKBACK = timedelta(weeks=8)
ACTIVITY_WINDOW = timedelta(days=7)


class SmokingStatus(IntEnum):
    NEVER = 0
    FORMER = 1
    CURRENT = 2


class _SmokingFacts(NamedTuple):
    has_start_age: bool
    has_stop_age: bool
    has_recent_activity: bool
    past_stop_age: bool


# First matching row wins; no match means NEVER.
_SMOKING_STATUS_TABLE: Tuple[Tuple[Callable[[_SmokingFacts], bool], SmokingStatus], ...] = (
    (
        lambda f: not f.has_start_age and not f.has_recent_activity,
        SmokingStatus.NEVER,
    ),
    (lambda f: f.has_start_age and not f.has_stop_age, SmokingStatus.CURRENT),
    (lambda f: f.has_recent_activity, SmokingStatus.CURRENT),
    (
        lambda f: f.has_start_age and f.has_stop_age and f.past_stop_age,
        SmokingStatus.FORMER,
    ),
)

# (exclusive upper bound, category); anything at or above the last bound is 3.
_BRINKMAN_BUCKETS = ((200, 1), (600, 2))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _age_is_set(value: Optional[int]) -> bool:
    return value is not None and value != 0


def missing_profile_fields(
    user: User, profile: UserProfile, what_if: bool = False
) -> List[str]:
    """Labels of the stored fields a prediction of this kind needs but lacks."""
    missing: List[str] = []
    if not user.dob:
        missing.append("date of birth")
    if not what_if and profile.bmi is None:
        missing.append("BMI")
    if what_if and not profile.height:
        missing.append("height")
    if profile.macrosomic_baby is None:
        missing.append("macrosomic baby history")
    if profile.bloodline is None:
        missing.append("diabetes bloodline status")
    if not what_if:
        if profile.hypertension is None:
            missing.append("hypertension status")
        if profile.cholesterol is None:
            missing.append("cholesterol status")
    return missing


def parse_date_of_birth(value: Optional[str]) -> date:
    """Accept ``YYYY-MM-DD`` or an RFC 3339 timestamp with an offset."""
    if not value:
        raise IncompleteProfileError(["date of birth"])
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is None or parsed.tzinfo is None:
        raise IncompleteProfileError(
            ["valid date of birth"], {"date_of_birth": value}
        )
    return parsed.date()


def calculate_age(dob: date, today: date) -> int:
    age = today.year - dob.year
    if today.timetuple().tm_yday < dob.timetuple().tm_yday:
        age -= 1
    return age


def _add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February in a non-leap target year.
        return day.replace(year=day.year + years, day=28)


def classify_smoking_status(
    age: int,
    start_age: Optional[int],
    stop_age: Optional[int],
    has_recent_activity: bool,
) -> SmokingStatus:
    facts = _SmokingFacts(
        has_start_age=_age_is_set(start_age),
        has_stop_age=_age_is_set(stop_age),
        has_recent_activity=has_recent_activity,
        past_stop_age=_age_is_set(stop_age) and age > (stop_age or 0),
    )
    for matches, status in _SMOKING_STATUS_TABLE:
        if matches(facts):
            return status
    return SmokingStatus.NEVER


def average_smoke_count(
    profile_smoke_count: Optional[int],
    smoke_activities: Sequence[Activity],
    dob: date,
    age: int,
    start_age: Optional[int],
    now: datetime,
) -> int:
    """Cigarettes per day used for the Brinkman index."""
    if profile_smoke_count and profile_smoke_count > 0:
        return profile_smoke_count
    if not smoke_activities:
        return 0

    total = sum(activity.value for activity in smoke_activities)

    if _age_is_set(start_age) and age > (start_age or 0):
        started = _add_years(dob, start_age or 0)
        started_at = datetime(started.year, started.month, started.day, tzinfo=timezone.utc)
        days = (now - started_at).total_seconds() / 86400
        if days >= 1:
            return math.ceil(total / days)

    dates = [activity.activity_date for activity in smoke_activities]
    span_days = max(1, (max(dates) - min(dates)).days + 1)
    return math.ceil(total / span_days)


def categorize_brinkman(raw: float) -> int:
    if raw <= 0:
        return 0
    for upper_bound, category in _BRINKMAN_BUCKETS:
        if raw < upper_bound:
            return category
    return 3


def brinkman_index(
    age: int, start_age: Optional[int], stop_age: Optional[int], avg_smoke_count: int
) -> int:
    start = start_age or 0
    smoking_years = (stop_age - start) if _age_is_set(stop_age) else (age - start)
    return categorize_brinkman(max(0, smoking_years) * avg_smoke_count)


def physical_activity_frequency(
    profile: UserProfile, workouts: Sequence[Activity], now: datetime
) -> int:
    """Sessions in the trailing week, or the profile value for new profiles."""
    window_start = now - ACTIVITY_WINDOW
    if profile.created_at is not None and profile.created_at < window_start:
        return sum(
            activity.value
            for activity in workouts
            if window_start <= activity.activity_date <= now
        )
    return profile.physical_activity_frequency or 0


class FeatureAssembler:
    """Builds ``AssembledFeatures`` with a fixed notion of "now"."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        return self._clock()

    def assemble(
        self,
        user: User,
        profile: UserProfile,
        smoke_activities: Sequence[Activity] = (),
        workout_activities: Sequence[Activity] = (),
        what_if: Optional[WhatIfOverride] = None,
    ) -> AssembledFeatures:
        """
        Raises:
            IncompleteProfileError: A required stored field is missing or
                the date of birth cannot be parsed.
        """
        missing = missing_profile_fields(user, profile, what_if=what_if is not None)
        if missing:
            raise IncompleteProfileError(missing)

        now = self.now()
        dob = parse_date_of_birth(user.dob)
        age = calculate_age(dob, now.date())
        start_age = profile.age_of_smoking if _age_is_set(profile.age_of_smoking) else None
        stop_age = (
            profile.age_of_stop_smoking
            if _age_is_set(profile.age_of_stop_smoking)
            else None
        )

        if what_if is not None:
            height_m = float(profile.height or 0) / 100
            bmi = what_if.weight / (height_m * height_m)
            smoking_status = int(what_if.smoking_status)
            avg = int(what_if.avg_smoke_count)
            is_hypertension = bool(what_if.is_hypertension)
            is_cholesterol = bool(what_if.is_cholesterol)
            activity = int(what_if.physical_activity_frequency)
        else:
            recent_cutoff = now - SMOKING_LOOKBACK
            has_recent = any(
                activity.activity_date >= recent_cutoff for activity in smoke_activities
            )
            smoking_status = int(
                classify_smoking_status(age, start_age, stop_age, has_recent)
            )
            avg = average_smoke_count(
                profile.smoke_count, smoke_activities, dob, age, start_age, now
            )
            bmi = float(profile.bmi or 0.0)
            is_hypertension = bool(profile.hypertension)
            is_cholesterol = bool(profile.cholesterol)
            activity = physical_activity_frequency(profile, workout_activities, now)

        return AssembledFeatures(
            age=age,
            smoking_status=smoking_status,
            is_cholesterol=is_cholesterol,
            is_macrosomic_baby=int(profile.macrosomic_baby or 0),
            physical_activity_frequency=activity,
            is_bloodline=bool(profile.bloodline),
            brinkman_index=brinkman_index(age, start_age, stop_age, avg),
            bmi=bmi,
            is_hypertension=is_hypertension,
            avg_smoke_count=avg,
        )
