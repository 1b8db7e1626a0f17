from __future__ import annotations
import json
import logging
from typing import Mapping

from db import Database, ExerciseRepository, UserExerciseSettingsRepository

logger = logging.getLogger(__name__)

BODY_PARTS = ("chest", "back", "legs", "shoulders", "arms", "core", "other")
EQUIPMENT_TYPES = (
    "barbell",
    "dumbbell",
    "machine",
    "cable",
    "bodyweight",
    "kettlebell",
    "other",
)
DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced")
CARDIO_KEYWORDS = ("ランニング", "バイク", "トレッドミル", "エアロ", "running", "bike", "treadmill", "rowing")

GUEST_CUSTOM_KEY = "musclegrow_guest_custom_exercises"
GUEST_LEGACY_KEY = "exercises"
GUEST_SETTINGS_KEY = "musclegrow_guest_settings"


def load_json(storage: Mapping[str, str], key: str, default):
    raw = storage.get(key)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ignoring unreadable guest value for %s", key)
        return default


class ExerciseService:
    """Exercise catalog, custom exercises and visibility preferences."""

    def __init__(
        self,
        exercise_repo: ExerciseRepository,
        settings_repo: UserExerciseSettingsRepository,
    ) -> None:
        self.exercises = exercise_repo
        self.settings = settings_repo

    def get_exercises(self, user_id: str | None) -> list[dict]:
        return self.exercises.fetch_for_user(user_id)

    @staticmethod
    def validate_exercise(data: dict) -> None:
        name = data.get("name")
        if name is not None and not isinstance(name, str):
            raise ValueError("name must be text")
        if not (name or "").strip():
            raise ValueError("name is required")
        if data.get("id") is not None and not isinstance(data["id"], str):
            raise ValueError("id must be text")
        if data.get("body_part") not in BODY_PARTS:
            raise ValueError("invalid body part")
        equipment = data.get("primary_equipment")
        if equipment is not None and equipment not in EQUIPMENT_TYPES:
            raise ValueError("invalid equipment")
        level = data.get("difficulty_level")
        if level is not None and level not in DIFFICULTY_LEVELS:
            raise ValueError("invalid difficulty level")

    def save_exercise(self, user_id: str, data: dict) -> dict:
        self.validate_exercise(data)
        payload = dict(data)
        payload["name"] = payload["name"].strip()
        eid = self.exercises.add_custom(user_id, payload, payload.get("id"))
        return self.exercises.fetch_detail(eid)

    def get_exercises_with_preferences(self, user_id: str) -> list[dict]:
        prefs = self.settings.fetch_for_user(user_id)
        result = []
        for exercise in self.exercises.fetch_for_user(user_id):
            if exercise["id"] in prefs:
                exercise["tier"] = "initial" if prefs[exercise["id"]] else "selectable"
            result.append(exercise)
        return result

    def toggle_visibility(self, user_id: str, exercise_id: str, visible: bool) -> None:
        self.exercises.fetch_accessible(user_id, exercise_id)
        self.settings.upsert(user_id, exercise_id, visible)

    @staticmethod
    def is_cardio(exercise: dict) -> bool:
        if exercise.get("body_part") != "other":
            return False
        names = f"{exercise.get('name') or ''} {exercise.get('name_en') or ''}".lower()
        return any(k in names for k in CARDIO_KEYWORDS)

    @staticmethod
    def mock_exercises() -> list[dict]:
        """The initial-tier catalog as seen by guests, with ``mock-N`` ids."""
        rows = Database.read_catalog()
        result = []
        for index, row in enumerate(r for r in rows if r["tier"] == "initial"):
            item = dict(row)
            item["id"] = f"mock-{index + 1}"
            result.append(item)
        return result

    @staticmethod
    def guest_custom_exercises(storage: Mapping[str, str]) -> list[dict]:
        """Guest customs from the legacy and current keys, de-duplicated by id."""
        seen: set[str] = set()
        result: list[dict] = []
        legacy = load_json(storage, GUEST_LEGACY_KEY, [])
        current = load_json(storage, GUEST_CUSTOM_KEY, [])
        items = [
            item
            for source in (legacy, current)
            if isinstance(source, list)
            for item in source
        ]
        for item in items:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            if not isinstance(item["id"], str) or not isinstance(item.get("name"), str):
                logger.warning("skipping malformed guest exercise %r", item.get("id"))
                continue
            if item["id"].startswith("mock-") or item["id"] in seen:
                continue
            seen.add(item["id"])
            result.append(item)
        return result

    @classmethod
    def guest_exercises(cls, storage: Mapping[str, str]) -> list[dict]:
        settings = load_json(storage, GUEST_SETTINGS_KEY, {})
        if not isinstance(settings, dict):
            settings = {}
        result = cls.mock_exercises()
        for item in cls.guest_custom_exercises(storage):
            custom = dict(item)
            custom["tier"] = "initial"
            result.append(custom)
        for exercise in result:
            if exercise["id"] in settings:
                exercise["tier"] = "initial" if settings[exercise["id"]] else "selectable"
        return result
