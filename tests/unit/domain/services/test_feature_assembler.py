from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from diabetify.domain.entities.errors import IncompleteProfileError
from diabetify.domain.entities.prediction_job import WhatIfOverride
from diabetify.domain.entities.user import Activity, ActivityType, User, UserProfile
from diabetify.domain.services.feature_assembler import (
    FeatureAssembler,
    SmokingStatus,
    average_smoke_count,
    brinkman_index,
    calculate_age,
    categorize_brinkman,
    classify_smoking_status,
    missing_profile_fields,
    parse_date_of_birth,
    physical_activity_frequency,
)

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _user() -> User:
    return User(id=1, name="Dina", dob="1975-06-01")


def _profile(**overrides) -> UserProfile:
    values = dict(
        user_id=1,
        height=175.0,
        bmi=27.3,
        macrosomic_baby=0,
        bloodline=False,
        hypertension=False,
        cholesterol=False,
        physical_activity_frequency=1,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return UserProfile(**values)


def _workout(day: datetime, value: int = 3) -> Activity:
    return Activity(
        user_id=1, activity_type=ActivityType.WORKOUT, value=value, activity_date=day
    )


def _smoke(day: datetime, value: int) -> Activity:
    return Activity(
        user_id=1, activity_type=ActivityType.SMOKE, value=value, activity_date=day
    )


def test_canonical_vector_for_non_smoker_with_recent_workout() -> None:
    assembler = FeatureAssembler(clock=lambda: NOW)

    features = assembler.assemble(
        _user(),
        _profile(),
        smoke_activities=[],
        workout_activities=[_workout(datetime(2024, 12, 28, tzinfo=timezone.utc))],
    )

    assert features.to_vector() == [49, 0, 0, 0, 3, 0, 0, 27.3, 0]
    assert features.to_info()["brinkman_score"] == 0
    assert features.to_info()["avg_smoke_count"] == 0


def test_what_if_vector_uses_override_and_recomputes_bmi() -> None:
    assembler = FeatureAssembler(clock=lambda: NOW)
    override = WhatIfOverride(
        smoking_status=2,
        avg_smoke_count=15,
        weight=80,
        is_hypertension=True,
        is_cholesterol=False,
        physical_activity_frequency=2,
    )

    features = assembler.assemble(
        _user(), _profile(age_of_smoking=20, bmi=None), what_if=override
    )
    vector = features.to_vector()

    assert vector[:7] == [49, 2, 0, 0, 2, 0, 2]
    assert vector[7] == pytest.approx(80 / (1.75 * 1.75))
    assert round(vector[7], 1) == 26.1
    assert vector[8] == 1


def test_incomplete_profile_reports_missing_cholesterol() -> None:
    assembler = FeatureAssembler(clock=lambda: NOW)

    with pytest.raises(IncompleteProfileError) as exc:
        assembler.assemble(_user(), _profile(cholesterol=None))

    assert exc.value.missing_fields == ["cholesterol status"]
    assert exc.value.message == "cholesterol status is required"


def test_missing_fields_differ_between_canonical_and_what_if() -> None:
    user = User(id=1, dob=None)
    profile = UserProfile(user_id=1)

    assert missing_profile_fields(user, profile) == [
        "date of birth",
        "BMI",
        "macrosomic baby history",
        "diabetes bloodline status",
        "hypertension status",
        "cholesterol status",
    ]
    assert missing_profile_fields(user, profile, what_if=True) == [
        "date of birth",
        "height",
        "macrosomic baby history",
        "diabetes bloodline status",
    ]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1975-06-01", date(1975, 6, 1)),
        ("1975-06-01T00:00:00Z", date(1975, 6, 1)),
        ("1975-06-01T08:30:00+07:00", date(1975, 6, 1)),
    ],
)
def test_parse_date_of_birth_accepts_date_and_rfc3339(value, expected) -> None:
    assert parse_date_of_birth(value) == expected


@pytest.mark.parametrize("value", ["01/06/1975", "1975-06-01T00:00:00", ""])
def test_parse_date_of_birth_rejects_other_formats(value) -> None:
    with pytest.raises(IncompleteProfileError):
        parse_date_of_birth(value)


def test_calculate_age_uses_day_of_year() -> None:
    dob = date(1975, 6, 1)
    assert calculate_age(dob, date(2025, 1, 1)) == 49
    assert calculate_age(dob, date(2025, 5, 31)) == 49
    assert calculate_age(dob, date(2025, 6, 1)) == 50


@pytest.mark.parametrize(
    "start, stop, recent, age, expected",
    [
        (None, None, False, 49, SmokingStatus.NEVER),
        (0, 0, False, 49, SmokingStatus.NEVER),
        (20, None, False, 49, SmokingStatus.CURRENT),
        (None, None, True, 49, SmokingStatus.CURRENT),
        (20, 30, True, 49, SmokingStatus.CURRENT),
        (20, 30, False, 49, SmokingStatus.FORMER),
        (20, 30, False, 25, SmokingStatus.NEVER),
    ],
)
def test_classify_smoking_status_table(start, stop, recent, age, expected) -> None:
    assert classify_smoking_status(age, start, stop, recent) is expected


@pytest.mark.parametrize(
    "raw, category",
    [(0, 0), (199, 1), (200, 2), (599, 2), (600, 3), (10000, 3)],
)
def test_categorize_brinkman_boundaries(raw, category) -> None:
    assert categorize_brinkman(raw) == category


def test_brinkman_index_uses_stop_age_when_set() -> None:
    # (30 - 20) * 25 = 250
    assert brinkman_index(49, 20, 30, 25) == 2
    # (49 - 20) * 25 = 725
    assert brinkman_index(49, 20, None, 25) == 3
    assert brinkman_index(49, None, None, 0) == 0


def test_average_smoke_count_prefers_profile_value() -> None:
    assert average_smoke_count(12, [], date(1975, 6, 1), 49, 20, NOW) == 12


def test_average_smoke_count_spreads_total_over_logged_span() -> None:
    activities = [
        _smoke(datetime(2024, 12, 1, tzinfo=timezone.utc), 10),
        _smoke(datetime(2024, 12, 10, tzinfo=timezone.utc), 20),
    ]
    assert average_smoke_count(None, activities, date(1975, 6, 1), 49, None, NOW) == 3


def test_average_smoke_count_spreads_total_over_smoking_years() -> None:
    activities = [_smoke(datetime(2024, 12, 1, tzinfo=timezone.utc), 100)]
    assert average_smoke_count(None, activities, date(1975, 6, 1), 49, 20, NOW) == 1


def test_average_smoke_count_without_activity_is_zero() -> None:
    assert average_smoke_count(None, [], date(1975, 6, 1), 49, 20, NOW) == 0


def test_physical_activity_uses_profile_value_for_new_profiles() -> None:
    profile = _profile(
        physical_activity_frequency=4,
        created_at=datetime(2024, 12, 30, tzinfo=timezone.utc),
    )
    workouts = [_workout(datetime(2024, 12, 31, tzinfo=timezone.utc), 1)]
    assert physical_activity_frequency(profile, workouts, NOW) == 4


def test_physical_activity_counts_only_the_trailing_week() -> None:
    workouts = [
        _workout(datetime(2024, 12, 20, tzinfo=timezone.utc), 5),
        _workout(datetime(2024, 12, 26, tzinfo=timezone.utc), 1),
        _workout(datetime(2024, 12, 31, tzinfo=timezone.utc), 2),
    ]
    assert physical_activity_frequency(_profile(), workouts, NOW) == 3
