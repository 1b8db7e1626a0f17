import os
import sys
import csv
import datetime
import io
import json

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import AccessDeniedError
from exercise_service import ExerciseService, GUEST_CUSTOM_KEY, GUEST_SETTINGS_KEY
from stats_service import StatisticsService
from workout_service import EXPORT_HEADER


def test_profile_created_on_first_read(services, user):
    profile = services.profiles.get_profile(user)
    assert profile["user_id"] == user
    assert profile["height"] is None
    assert profile["bmi"] is None


def test_profile_update_records_history(services, user):
    profile = services.profiles.update_profile(user, {"height": 170, "weight": 65})
    assert profile["bmi"] == 22.5
    assert profile["bmi_category"] == "normal"
    history = services.profiles.get_profile_history(user, "all")
    assert len(history) == 1
    assert history[0]["bmi"] == 22.5

    services.profiles.update_profile(user, {"big3_target_bench_press": 110})
    assert len(services.profiles.get_profile_history(user, "all")) == 1
    services.profiles.update_profile(user, {"weight": 66})
    history = services.profiles.get_profile_history(user, "all")
    assert [h["weight"] for h in history] == [65.0, 66.0]


def test_profile_validation(services, user):
    with pytest.raises(ValueError, match="no data to update"):
        services.profiles.update_profile(user, {})
    with pytest.raises(ValueError, match="must not be negative"):
        services.profiles.update_profile(user, {"weight": -1})
    with pytest.raises(ValueError, match="body_fat"):
        services.profiles.update_profile(user, {"body_fat": 120})
    with pytest.raises(ValueError, match="unknown field"):
        services.profiles.update_profile(user, {"shoe_size": 42})


def test_big3_targets_and_body_composition(services, user):
    assert services.profiles.get_big3_targets(None) == {
        "bench_press": 100.0,
        "squat": 120.0,
        "deadlift": 140.0,
    }
    services.profiles.update_profile(
        user, {"big3_target_bench_press": 110, "weight": 70, "body_fat": 20, "muscle_mass": 30}
    )
    targets = services.profiles.get_big3_targets(user)
    assert targets["bench_press"] == 110.0
    assert targets["squat"] == 120.0
    assert services.profiles.body_composition(user)["other_mass"] == 26.0


def test_exercise_catalog_and_customs(services, user, other_user):
    exercises = services.exercises.get_exercises(user)
    assert len(exercises) == 37
    assert exercises[0]["id"] == "bench-press"

    custom = services.exercises.save_exercise(user, {"name": " Cable Fly ", "body_part": "chest"})
    assert custom["tier"] == "custom"
    assert custom["name"] == "Cable Fly"
    assert custom["user_id"] == user
    assert services.exercises.get_exercises(user)[-1]["id"] == custom["id"]
    assert len(services.exercises.get_exercises(other_user)) == 37

    with pytest.raises(ValueError, match="invalid body part"):
        services.exercises.save_exercise(user, {"name": "X", "body_part": "toes"})
    with pytest.raises(ValueError, match="name is required"):
        services.exercises.save_exercise(user, {"name": "", "body_part": "chest"})
    with pytest.raises(ValueError, match="already exists"):
        services.exercises.save_exercise(
            user, {"id": custom["id"], "name": "Again", "body_part": "chest"}
        )


def test_visibility_preferences(services, user, other_user):
    custom = services.exercises.save_exercise(user, {"name": "Cable Fly", "body_part": "chest"})
    services.exercises.toggle_visibility(user, "incline-bench-press", True)
    services.exercises.toggle_visibility(user, "bench-press", False)
    tiers = {e["id"]: e["tier"] for e in services.exercises.get_exercises_with_preferences(user)}
    assert tiers["incline-bench-press"] == "initial"
    assert tiers["bench-press"] == "selectable"
    assert tiers["crunch"] == "selectable"
    assert tiers[custom["id"]] == "custom"

    with pytest.raises(ValueError, match="exercise not found"):
        services.exercises.toggle_visibility(other_user, custom["id"], True)
    with pytest.raises(ValueError, match="exercise not found"):
        services.exercises.toggle_visibility(user, "missing", True)


def test_guest_exercise_view():
    mocks = ExerciseService.mock_exercises()
    assert len(mocks) == 32
    assert mocks[0]["id"] == "mock-1"
    assert mocks[0]["name"] == "ベンチプレス"

    storage = {
        "exercises": json.dumps([{"id": "mock-3", "name": "skip"}, {"id": "c1", "name": "Old", "body_part": "back"}]),
        GUEST_CUSTOM_KEY: json.dumps([{"id": "c1", "name": "Dup", "body_part": "back"}, {"id": "c2", "name": "New", "body_part": "arms"}]),
        GUEST_SETTINGS_KEY: json.dumps({"mock-2": False}),
    }
    customs = ExerciseService.guest_custom_exercises(storage)
    assert [c["id"] for c in customs] == ["c1", "c2"]
    assert customs[0]["name"] == "Old"

    view = {e["id"]: e for e in ExerciseService.guest_exercises(storage)}
    assert view["mock-2"]["tier"] == "selectable"
    assert view["c2"]["tier"] == "initial"
    assert ExerciseService.guest_exercises({"exercises": "{not json"})[0]["id"] == "mock-1"


def test_guest_exercises_skip_malformed_entries():
    storage = {
        "exercises": json.dumps({"id": "c9"}),
        GUEST_CUSTOM_KEY: json.dumps([
            {"id": 5, "name": "Band", "body_part": "back"},
            {"id": "c3", "name": 7, "body_part": "back"},
            {"id": "c4", "name": "Curl", "body_part": "arms"},
        ]),
        GUEST_SETTINGS_KEY: json.dumps(["mock-1"]),
    }
    assert [c["id"] for c in ExerciseService.guest_custom_exercises(storage)] == ["c4"]
    assert ExerciseService.guest_exercises(storage)[-1]["id"] == "c4"
    with pytest.raises(ValueError, match="name must be text"):
        ExerciseService.validate_exercise({"name": 7, "body_part": "back"})
    with pytest.raises(ValueError, match="id must be text"):
        ExerciseService.validate_exercise({"id": 5, "name": "Band", "body_part": "back"})


def test_cardio_detection():
    assert ExerciseService.is_cardio({"name": "ランニング", "body_part": "other"})
    assert ExerciseService.is_cardio({"name": "x", "name_en": "Exercise Bike", "body_part": "other"})
    assert not ExerciseService.is_cardio({"name": "ベンチプレス", "body_part": "chest"})


def test_sessions_are_one_per_day(services, user):
    sid = services.workouts.save_workout_session(user, "2024-05-01", "push day")
    assert services.workouts.save_workout_session(user, "2024-05-01", None, 45) == sid
    session = services.workouts.get_workout_session(user, "2024-05-01")
    assert session["note"] == "push day"
    assert session["duration_minutes"] == 45
    assert services.workouts.get_workout_session(user, "2024-05-02") is None
    with pytest.raises(ValueError, match="invalid date"):
        services.workouts.save_workout_session(user, "05/01/2024")

    services.workouts.save_workout_session(user, "2024-04-01")
    dates = [s["date"] for s in services.workouts.get_workout_sessions(user)]
    assert dates == ["2024-05-01", "2024-04-01"]
    ranged = services.workouts.get_workout_sessions(user, "2024-04-15", "2024-05-31")
    assert [s["date"] for s in ranged] == ["2024-05-01"]


def test_save_sets_filters_and_replaces(services, user):
    sid = services.workouts.save_workout_session(user, "2024-05-01")
    result = services.workouts.save_sets(
        user,
        sid,
        "bench-press",
        [
            {"weight": 60, "reps": 10, "is_warmup": True},
            {"weight": 0, "reps": 0},
            {"weight": 80, "reps": 5, "rpe": 8},
        ],
    )
    assert result == {"count": 2}
    sets = services.workouts.get_sets(user, sid, "bench-press")
    assert [(s["set_order"], s["weight"], s["is_warmup"]) for s in sets] == [
        (1, 60.0, True),
        (2, 80.0, False),
    ]

    services.workouts.save_sets(user, sid, "bench-press", [{"reps": 12}])
    sets = services.workouts.get_sets(user, sid, "bench-press")
    assert len(sets) == 1
    assert sets[0]["weight"] == 0
    assert services.workouts.get_sets(user, sid, "mock-1") == []


def test_save_sets_validation(services, user, other_user):
    sid = services.workouts.save_workout_session(user, "2024-05-01")
    with pytest.raises(ValueError, match="weight must not be negative"):
        services.workouts.save_sets(user, sid, "bench-press", [{"weight": -5, "reps": 5}])
    with pytest.raises(ValueError, match="rpe"):
        services.workouts.save_sets(user, sid, "bench-press", [{"weight": 50, "reps": 5, "rpe": 11}])
    with pytest.raises(ValueError, match="weight must be a number"):
        services.workouts.save_sets(user, sid, "bench-press", [{"weight": "90", "reps": 5}])
    with pytest.raises(ValueError, match="distance must be a number"):
        services.workouts.save_cardio_records(user, sid, "running", [{"duration": 20, "distance": "5km"}])
    with pytest.raises(AccessDeniedError):
        services.workouts.save_sets(other_user, sid, "bench-press", [{"weight": 50, "reps": 5}])
    with pytest.raises(ValueError, match="session not found"):
        services.workouts.save_sets(user, "missing", "bench-press", [{"reps": 5}])


def test_session_details_history_and_export(services, user):
    sid = services.workouts.save_workout_session(user, "2024-05-01", "evening")
    services.workouts.save_sets(user, sid, "bench-press", [{"weight": 80, "reps": 5}])
    services.workouts.save_cardio_records(
        user, sid, "running", [{"duration": 20, "distance": 3.2}, {"notes": "empty"}]
    )
    details = services.workouts.get_session_details(user, sid)
    assert details["session"]["id"] == sid
    assert details["workout_exercises"][0]["exercise_id"] == "bench-press"
    assert len(details["cardio_exercises"][0]["records"]) == 1

    parts = services.workouts.get_body_parts_by_date_range(user, "2024-05-01", "2024-05-31")
    assert parts == {"2024-05-01": ["chest", "other"]}

    rows = list(csv.reader(io.StringIO(services.workouts.export_all_data(user))))
    assert rows[0] == EXPORT_HEADER
    kinds = sorted(r[3] for r in rows[1:])
    assert kinds == ["cardio", "strength"]
    assert any(r[1] == "ベンチプレス" and r[4] == "80.0" for r in rows[1:])

    assert services.workouts.delete_cardio_records(user, sid, "running") == 1
    assert services.workouts.get_cardio_records(user, sid, "running") == []


def test_delete_all_data(services, user, other_user):
    sid = services.workouts.save_workout_session(user, "2024-05-01")
    services.workouts.save_sets(user, sid, "bench-press", [{"weight": 80, "reps": 5}])
    other_sid = services.workouts.save_workout_session(other_user, "2024-05-01")
    services.profiles.update_profile(user, {"weight": 70})
    assert services.workouts.delete_user_all_data(user) == {"deleted_sessions": 1}
    assert services.workouts.get_workout_sessions(user) == []
    assert services.profiles.get_profile_history(user, "all") == []
    assert services.workouts.get_workout_sessions(other_user)[0]["id"] == other_sid


@pytest.fixture
def trained(services, user):
    plan = {
        "2024-01-01": [{"weight": 100, "reps": 5}, {"weight": 200, "reps": 1, "is_warmup": True}],
        "2024-01-08": [{"weight": 95, "reps": 5}],
        "2024-01-15": [{"weight": 105, "reps": 3}],
    }
    for date, sets in plan.items():
        sid = services.workouts.save_workout_session(user, date)
        services.workouts.save_sets(user, sid, "bench-press", sets)
    sid = services.workouts.save_workout_session(user, "2024-01-10")
    services.workouts.save_sets(user, sid, "squat", [{"weight": 120, "reps": 5}])
    return user


def test_big3_progress(services, trained):
    progress = services.stats.get_big3_progress(trained, "all")
    assert progress["bench_press"] == [
        {"date": "2024-01-01", "max_weight": 100.0},
        {"date": "2024-01-15", "max_weight": 105.0},
    ]
    assert progress["squat"] == [{"date": "2024-01-10", "max_weight": 120.0}]
    assert progress["deadlift"] == []

    maxima = services.stats.get_big3_max_weights(trained)
    assert maxima == {"bench_press": 105.0, "squat": 120.0, "deadlift": 0.0}
    overview = services.stats.big3_overview(trained, services.profiles.get_big3_targets(trained))
    assert overview[0]["progress"] == 100.0
    assert services.stats.max_weights(trained)["bench-press"] == 200.0


def test_exercise_progress_merges_local_rows(services, trained, other_user):
    progress = services.stats.get_exercise_progress(
        trained, "bench-press", "all", [{"date": "2024-01-10", "max_weight": 102}]
    )
    assert [p["max_weight"] for p in progress] == [100.0, 102.0, 105.0]
    with pytest.raises(ValueError, match="exercise not found"):
        services.stats.get_exercise_progress(trained, "missing", "all")


def test_last_trained_and_previous_record(services, trained):
    last = services.stats.last_trained(trained)
    assert last["exercises"]["bench-press"] == "2024-01-15"
    assert last["body_parts"]["chest"] == "2024-01-15"
    assert last["body_parts"]["legs"] == "2024-01-10"
    assert last["body_parts"]["back"] is None

    previous = services.stats.previous_record(trained, "bench-press", "2024-01-15")
    assert previous["date"] == "2024-01-08"
    assert previous["sets"][0]["weight"] == 95.0
    assert services.stats.previous_record(trained, "bench-press", "2024-01-01") is None


def test_weekly_streak():
    dates = ["2024-01-01", "2024-01-08", "2024-01-10", "2024-01-15"]
    assert StatisticsService.weekly_streak(dates, datetime.date(2024, 1, 17)) == 3
    assert StatisticsService.weekly_streak(dates, datetime.date(2024, 1, 24)) == 3
    assert StatisticsService.weekly_streak(dates, datetime.date(2024, 1, 31)) == 0
    assert StatisticsService.weekly_streak([], datetime.date(2024, 1, 31)) == 0


def test_training_summary(services, trained):
    summary = services.stats.training_summary(trained, datetime.date(2024, 1, 17))
    assert summary == {"total_days": 4, "weekly_streak": 3, "sessions_this_week": 1}
