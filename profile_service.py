from __future__ import annotations
import logging
from typing import Optional

from db import ProfileRepository, ProfileHistoryRepository
from algorithms import BodyMetrics, Big3, ProgressTools

logger = logging.getLogger(__name__)

MEASUREMENT_FIELDS = ("height", "weight", "body_fat", "muscle_mass")
TARGET_FIELDS = (
    "big3_target_bench_press",
    "big3_target_squat",
    "big3_target_deadlift",
)


class ProfileService:
    """Body profile, measurement history and Big3 targets."""

    def __init__(
        self,
        profile_repo: ProfileRepository,
        history_repo: ProfileHistoryRepository,
    ) -> None:
        self.profiles = profile_repo
        self.history = history_repo

    @staticmethod
    def _decorate(profile: dict) -> dict:
        profile = dict(profile)
        bmi = BodyMetrics.calculate_bmi(profile.get("height"), profile.get("weight"))
        profile["bmi"] = bmi or None
        profile["bmi_category"] = BodyMetrics.bmi_category(bmi) if bmi else None
        return profile

    def get_profile(self, user_id: str) -> dict:
        profile = self.profiles.fetch(user_id)
        if profile is None:
            profile = self.profiles.upsert(user_id, {})
        return self._decorate(profile)

    @staticmethod
    def validate(values: dict) -> dict:
        clean: dict[str, Optional[float]] = {}
        for key, value in values.items():
            if key not in MEASUREMENT_FIELDS + TARGET_FIELDS:
                raise ValueError(f"unknown field: {key}")
            if value is None:
                clean[key] = None
                continue
            value = float(value)
            if value < 0:
                raise ValueError(f"{key} must not be negative")
            if key == "body_fat" and value > 100:
                raise ValueError("body_fat must not exceed 100")
            if key == "height" and value > 300:
                raise ValueError("height must not exceed 300")
            clean[key] = value
        return clean

    def update_profile(self, user_id: str, values: dict) -> dict:
        if not values:
            raise ValueError("no data to update")
        clean = self.validate(values)
        before = self.profiles.fetch(user_id) or {}
        profile = self.profiles.upsert(user_id, clean)
        changed = any(
            k in clean and clean[k] != before.get(k) for k in MEASUREMENT_FIELDS
        )
        if changed:
            self.history.add(
                user_id,
                profile["height"],
                profile["weight"],
                profile["body_fat"],
                profile["muscle_mass"],
                BodyMetrics.calculate_bmi(profile["height"], profile["weight"]) or None,
            )
            logger.info("recorded body measurement for user %s", user_id)
        return self._decorate(profile)

    def get_big3_targets(self, user_id: str | None) -> dict[str, float]:
        if user_id is None:
            return Big3.targets(None)
        return Big3.targets(self.profiles.fetch(user_id))

    def get_profile_history(self, user_id: str, preset: str = "month") -> list[dict]:
        start = ProgressTools.start_date(preset)
        return self.history.fetch_since(user_id, start.isoformat())

    def body_composition(self, user_id: str) -> Optional[dict]:
        profile = self.get_profile(user_id)
        return BodyMetrics.body_composition(
            profile.get("weight"), profile.get("body_fat"), profile.get("muscle_mass")
        )

    def delete_history(self, user_id: str) -> None:
        self.history.delete_for_user(user_id)
