"""Move guest-mode local storage into a signed-in account.

Guests keep their records in a flat string mapping that mirrors browser
local storage:

* ``workout_YYYY-MM-DD_<exercise id>``: JSON list of sets
* ``cardio_YYYY-MM-DD_<exercise id>``: JSON list of cardio records
* ``exercises`` / ``musclegrow_guest_custom_exercises``: custom exercises
* ``musclegrow_guest_settings``: ``{exercise id: visible}``
* ``musclegrow_guest_profile``: body profile

Guest exercise ids are either ``mock-N`` ids of the built-in catalog or ids
of guest custom exercises. They are translated to server ids by matching
on name and body part. Days that already hold a record for an exercise on
the server are left untouched.
"""
from __future__ import annotations
import json
import logging
from typing import Callable, MutableMapping, Optional

from algorithms import RecordFilters
from exercise_service import (
    ExerciseService,
    GUEST_CUSTOM_KEY,
    GUEST_LEGACY_KEY,
    GUEST_SETTINGS_KEY,
    load_json,
)
from profile_service import ProfileService, MEASUREMENT_FIELDS, TARGET_FIELDS
from workout_service import WorkoutService

logger = logging.getLogger(__name__)

GUEST_PROFILE_KEY = "musclegrow_guest_profile"
MIGRATED_FLAG_KEY = "guest_data_migrated"


def collect_guest_records(
    storage: MutableMapping[str, str],
) -> tuple[dict[str, dict[str, dict[str, list]]], list[str]]:
    """Group guest records as ``{date: {"workout"|"cardio": {exercise id: rows}}}``.

    Only valid rows are kept, and dates without any are left out.
    """
    by_date: dict[str, dict[str, dict[str, list]]] = {}
    keys: list[str] = []
    for key in list(storage.keys()):
        parsed = RecordFilters.parse_storage_key(key)
        if parsed is None:
            continue
        kind, date, exercise_id = parsed
        keys.append(key)
        try:
            rows = json.loads(storage[key])
        except json.JSONDecodeError:
            logger.warning("skipping unreadable guest record %s", key)
            continue
        if not isinstance(rows, list):
            continue
        rows = [r for r in rows if isinstance(r, dict)]
        if kind == "workout":
            rows = RecordFilters.filter_sets(rows)
        else:
            rows = RecordFilters.filter_cardio(rows)
        if not rows:
            continue
        day = by_date.setdefault(date, {"workout": {}, "cardio": {}})
        day[kind][exercise_id] = rows
    return by_date, keys


def guest_set_groups(storage: MutableMapping[str, str]) -> dict[tuple[str, str], list[dict]]:
    """Guest strength records in the ``{(date, exercise id): sets}`` shape."""
    by_date, _ = collect_guest_records(storage)
    return {
        (date, eid): rows
        for date, kinds in by_date.items()
        for eid, rows in kinds["workout"].items()
    }


class GuestDataMigrator:
    """Merge guest local storage into a user's server-side records."""

    def __init__(
        self,
        exercise_service: ExerciseService,
        workout_service: WorkoutService,
        profile_service: ProfileService,
    ) -> None:
        self.exercises = exercise_service
        self.workouts = workout_service
        self.profiles = profile_service

    def _build_mapper(
        self, db_exercises: list[dict], local_exercises: list[dict]
    ) -> Callable[[str], Optional[str]]:
        db_ids = {e["id"] for e in db_exercises}
        by_key: dict[str, str] = {}
        by_name: dict[str, str] = {}
        for exercise in db_exercises:
            by_key.setdefault(f"{exercise['name']}__{exercise['body_part']}", exercise["id"])
            by_name.setdefault(exercise["name"], exercise["id"])
        local_by_id = {e["id"]: e for e in local_exercises}

        def map_id(exercise_id: str) -> Optional[str]:
            if not exercise_id.startswith("mock-") and exercise_id in db_ids:
                return exercise_id
            local = local_by_id.get(exercise_id)
            if local is None:
                return None
            key = f"{local.get('name')}__{local.get('body_part')}"
            return by_key.get(key) or by_name.get(local.get("name"))

        return map_id

    def _migrate_customs(self, user_id: str, customs: list[dict]) -> int:
        saved = 0
        for item in customs:
            try:
                self.exercises.save_exercise(user_id, item)
                saved += 1
            except (ValueError, KeyError) as e:
                logger.warning("skipping guest exercise %s: %s", item.get("id"), e)
        return saved

    def _migrate_profile(self, user_id: str, storage: MutableMapping[str, str]) -> bool:
        data = load_json(storage, GUEST_PROFILE_KEY, {})
        if not isinstance(data, dict):
            return False
        values = {
            k: v
            for k, v in data.items()
            if k in MEASUREMENT_FIELDS + TARGET_FIELDS and v is not None
        }
        if not values:
            return False
        try:
            self.profiles.update_profile(user_id, values)
        except ValueError as e:
            logger.warning("skipping guest profile: %s", e)
            return False
        return True

    def _migrate_settings(
        self,
        user_id: str,
        storage: MutableMapping[str, str],
        map_id: Callable[[str], Optional[str]],
    ) -> int:
        settings = load_json(storage, GUEST_SETTINGS_KEY, {})
        if not isinstance(settings, dict):
            return 0
        applied = 0
        for exercise_id, visible in settings.items():
            target = map_id(exercise_id)
            if target is None:
                continue
            try:
                self.exercises.toggle_visibility(user_id, target, bool(visible))
                applied += 1
            except ValueError as e:
                logger.warning("skipping guest setting for %s: %s", exercise_id, e)
        return applied

    def migrate(self, user_id: str, storage: MutableMapping[str, str]) -> dict:
        """Migrate and, when every day succeeded, clear the guest storage."""
        result = {
            "status": "migrated",
            "custom_exercises": 0,
            "settings": 0,
            "profile": False,
            "dates": 0,
            "sets": 0,
            "cardio_records": 0,
            "skipped_exercises": 0,
            "failed_dates": [],
        }
        if storage.get(MIGRATED_FLAG_KEY) == "true":
            result["status"] = "skipped"
            return result

        customs = self.exercises.guest_custom_exercises(storage)
        result["custom_exercises"] = self._migrate_customs(user_id, customs)
        result["profile"] = self._migrate_profile(user_id, storage)

        db_exercises = self.exercises.get_exercises(user_id)
        if not db_exercises:
            logger.error("no exercises available, guest data kept for user %s", user_id)
            result["status"] = "no_exercises"
            return result

        map_id = self._build_mapper(
            db_exercises, self.exercises.mock_exercises() + customs
        )
        result["settings"] = self._migrate_settings(user_id, storage, map_id)

        by_date, record_keys = collect_guest_records(storage)
        for date in sorted(by_date):
            try:
                self._migrate_day(user_id, date, by_date[date], map_id, result)
                result["dates"] += 1
            except ValueError as e:
                logger.warning("failed to migrate guest records for %s: %s", date, e)
                result["failed_dates"].append(date)

        if result["failed_dates"]:
            result["status"] = "partial"
            return result

        for key in record_keys + [
            GUEST_CUSTOM_KEY,
            GUEST_LEGACY_KEY,
            GUEST_SETTINGS_KEY,
            GUEST_PROFILE_KEY,
        ]:
            storage.pop(key, None)
        storage[MIGRATED_FLAG_KEY] = "true"
        logger.info(
            "migrated guest data for user %s: %s days, %s sets, %s cardio records",
            user_id,
            result["dates"],
            result["sets"],
            result["cardio_records"],
        )
        return result

    def _migrate_day(
        self,
        user_id: str,
        date: str,
        day: dict[str, dict[str, list]],
        map_id: Callable[[str], Optional[str]],
        result: dict,
    ) -> None:
        session_id = self.workouts.save_workout_session(user_id, date)
        details = self.workouts.get_session_details(user_id, session_id)
        workout_ids = {e["exercise_id"] for e in details["workout_exercises"]}
        cardio_ids = {e["exercise_id"] for e in details["cardio_exercises"]}

        for exercise_id, sets in day["workout"].items():
            target = map_id(exercise_id)
            if target is None or target in workout_ids:
                result["skipped_exercises"] += 1
                continue
            saved = self.workouts.save_sets(user_id, session_id, target, sets)
            result["sets"] += saved["count"]

        for exercise_id, records in day["cardio"].items():
            target = map_id(exercise_id)
            if target is None or target in cardio_ids:
                result["skipped_exercises"] += 1
                continue
            saved = self.workouts.save_cardio_records(user_id, session_id, target, records)
            result["cardio_records"] += saved["count"]
