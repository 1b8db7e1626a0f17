from __future__ import annotations
import datetime
from typing import Iterable, Optional

from db import (
    SetRepository,
    CardioRecordRepository,
    WorkoutSessionRepository,
    ExerciseRepository,
)
from algorithms import Big3, ProgressTools, RecordFilters


class StatisticsService:
    """Compute workout statistics for the stats and history screens."""

    def __init__(
        self,
        set_repo: SetRepository,
        cardio_repo: CardioRecordRepository,
        session_repo: WorkoutSessionRepository,
        exercise_repo: ExerciseRepository,
    ) -> None:
        self.sets = set_repo
        self.cardio = cardio_repo
        self.sessions = session_repo
        self.exercises = exercise_repo

    def _progress(self, user_id: str, exercise_id: str, start: str | None) -> list[dict]:
        rows = self.sets.max_weight_by_date(user_id, exercise_id, start)
        return ProgressTools.extract_max_weight_updates(
            {"date": d, "max_weight": w} for d, w in rows
        )

    def big3_ids(self, user_id: str) -> dict[str, Optional[str]]:
        return Big3.identify(self.exercises.fetch_for_user(user_id))

    def get_big3_progress(self, user_id: str, preset: str = "month") -> dict[str, list[dict]]:
        """Dates on which each Big3 lift reached a new max weight."""
        start = ProgressTools.start_date(preset).isoformat()
        result: dict[str, list[dict]] = {}
        for key, exercise_id in self.big3_ids(user_id).items():
            result[key] = self._progress(user_id, exercise_id, start) if exercise_id else []
        return result

    def get_exercise_progress(
        self,
        user_id: str,
        exercise_id: str,
        preset: str = "month",
        local_rows: Iterable[dict] | None = None,
    ) -> list[dict]:
        self.exercises.fetch_accessible(user_id, exercise_id)
        start = ProgressTools.start_date(preset).isoformat()
        progress = self._progress(user_id, exercise_id, start)
        if local_rows:
            local = [r for r in local_rows if r["date"] >= start]
            progress = ProgressTools.merge_progress(progress, local)
        return progress

    def get_big3_max_weights(self, user_id: str) -> dict[str, float]:
        maxima = self.sets.max_weights(user_id, include_warmup=False)
        return {
            key: float(maxima.get(eid, 0.0)) if eid else 0.0
            for key, eid in self.big3_ids(user_id).items()
        }

    def big3_overview(self, user_id: str, targets: dict[str, float]) -> list[dict]:
        return Big3.create_data(self.get_big3_max_weights(user_id), targets)

    def _set_groups(self, user_id: str) -> dict:
        return RecordFilters.group_by_day(self.sets.fetch_history(user_id))

    def max_weights(self, user_id: str) -> dict[str, float]:
        return RecordFilters.calculate_max_weights(self._set_groups(user_id))

    def last_trained(self, user_id: str) -> dict:
        dates = RecordFilters.last_trained_dates(
            self._set_groups(user_id),
            RecordFilters.group_by_day(self.cardio.fetch_history(user_id)),
        )
        exercises = self.exercises.fetch_for_user(user_id)
        return {
            "exercises": dates,
            "body_parts": RecordFilters.last_trained_by_body_part(exercises, dates),
        }

    def previous_record(
        self, user_id: str, exercise_id: str, before_date: str
    ) -> Optional[dict]:
        groups = RecordFilters.group_by_day(self.sets.fetch_history(user_id, exercise_id))
        return RecordFilters.previous_record(groups, exercise_id, before_date)

    @staticmethod
    def weekly_streak(dates: Iterable[str], today: datetime.date) -> int:
        """Consecutive ISO weeks with training, ending this week or last week."""
        weeks = set()
        for d in dates:
            day = datetime.date.fromisoformat(d)
            weeks.add(day - datetime.timedelta(days=day.weekday()))
        current = today - datetime.timedelta(days=today.weekday())
        if current not in weeks:
            current -= datetime.timedelta(days=7)
        streak = 0
        while current in weeks:
            streak += 1
            current -= datetime.timedelta(days=7)
        return streak

    def training_summary(self, user_id: str, today: datetime.date | None = None) -> dict:
        today = today or datetime.date.today()
        dates = [
            s["date"]
            for s in self.sessions.fetch_range(user_id)
            if s["date"] <= today.isoformat()
        ]
        week_start = (today - datetime.timedelta(days=today.weekday())).isoformat()
        return {
            "total_days": len(set(dates)),
            "weekly_streak": self.weekly_streak(dates, today),
            "sessions_this_week": len([d for d in dates if d >= week_start]),
        }
