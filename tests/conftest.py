import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    UserRepository,
    ProfileRepository,
    ProfileHistoryRepository,
    ExerciseRepository,
    UserExerciseSettingsRepository,
    WorkoutSessionRepository,
    SetRepository,
    CardioRecordRepository,
)
from exercise_service import ExerciseService
from migration_service import GuestDataMigrator
from profile_service import ProfileService
from stats_service import StatisticsService
from workout_service import WorkoutService


class Services:
    """Service layer wired to one database file."""

    def __init__(self, db_path: str) -> None:
        self.users = UserRepository(db_path)
        history = ProfileHistoryRepository(db_path)
        exercises = ExerciseRepository(db_path)
        sessions = WorkoutSessionRepository(db_path)
        sets = SetRepository(db_path)
        cardio = CardioRecordRepository(db_path)
        self.profiles = ProfileService(ProfileRepository(db_path), history)
        self.exercises = ExerciseService(exercises, UserExerciseSettingsRepository(db_path))
        self.workouts = WorkoutService(sessions, sets, cardio, exercises, history)
        self.stats = StatisticsService(sets, cardio, sessions, exercises)
        self.migrator = GuestDataMigrator(self.exercises, self.workouts, self.profiles)


@pytest.fixture
def services(tmp_path):
    return Services(str(tmp_path / "musclegrow.db"))


@pytest.fixture
def user(services):
    return services.users.create("Alice", "alice@example.com")


@pytest.fixture
def other_user(services):
    return services.users.create("Bob", "bob@example.com")
