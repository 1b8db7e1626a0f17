from __future__ import annotations
import csv
import datetime
import io
import logging

from db import (
    WorkoutSessionRepository,
    SetRepository,
    CardioRecordRepository,
    ExerciseRepository,
    ProfileHistoryRepository,
)
from algorithms import RecordFilters
from errors import AccessDeniedError

logger = logging.getLogger(__name__)

EXPORT_HEADER = [
    "date",
    "exercise",
    "body_part",
    "type",
    "weight",
    "reps",
    "set_number",
    "duration",
    "distance",
    "calories",
    "note",
]


def check_date(value: str) -> str:
    try:
        return datetime.date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise ValueError("invalid date")



def check_numbers(item: dict, keys: tuple[str, ...]) -> None:
    """Reject non-numeric or negative measurements."""
    for key in keys:
        value = item.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number")
        if value < 0:
            raise ValueError(f"{key} must not be negative")


class WorkoutService:
    """Daily sessions with their strength sets and cardio records."""

    def __init__(
        self,
        session_repo: WorkoutSessionRepository,
        set_repo: SetRepository,
        cardio_repo: CardioRecordRepository,
        exercise_repo: ExerciseRepository,
        history_repo: ProfileHistoryRepository,
    ) -> None:
        self.sessions = session_repo
        self.sets = set_repo
        self.cardio = cardio_repo
        self.exercises = exercise_repo
        self.history = history_repo

    def save_workout_session(
        self,
        user_id: str,
        date: str,
        note: str | None = None,
        duration_minutes: int | None = None,
    ) -> str:
        if duration_minutes is not None and duration_minutes < 0:
            raise ValueError("duration_minutes must not be negative")
        return self.sessions.upsert(user_id, check_date(date), note, duration_minutes)

    def get_workout_session(self, user_id: str, date: str) -> dict | None:
        return self.sessions.fetch_by_date(user_id, check_date(date))

    def get_workout_sessions(
        self, user_id: str, start_date: str | None = None, end_date: str | None = None
    ) -> list[dict]:
        start = check_date(start_date) if start_date else None
        end = check_date(end_date) if end_date else None
        return self.sessions.fetch_range(user_id, start, end)

    def owned_session(self, user_id: str, session_id: str) -> dict:
        session = self.sessions.fetch_detail(session_id)
        if session["user_id"] != user_id:
            raise AccessDeniedError("access denied")
        return session

    def save_sets(
        self, user_id: str, session_id: str, exercise_id: str, sets: list[dict]
    ) -> dict:
        """Replace the sets of one exercise, keeping only valid entries."""
        self.owned_session(user_id, session_id)
        self.exercises.fetch_accessible(user_id, exercise_id)
        for item in sets:
            check_numbers(item, ("weight", "reps", "duration", "rest_seconds", "rpe"))
            rpe = item.get("rpe")
            if rpe is not None and not 0 <= rpe <= 10:
                raise ValueError("rpe must be between 0 and 10")
        valid = RecordFilters.filter_sets(sets)
        count = self.sets.replace(session_id, exercise_id, valid)
        return {"count": count}

    def get_sets(self, user_id: str, session_id: str, exercise_id: str) -> list[dict]:
        if exercise_id.startswith("mock-"):
            return []
        self.owned_session(user_id, session_id)
        return self.sets.fetch_for_exercise(session_id, exercise_id)

    def save_cardio_records(
        self, user_id: str, session_id: str, exercise_id: str, records: list[dict]
    ) -> dict:
        self.owned_session(user_id, session_id)
        self.exercises.fetch_accessible(user_id, exercise_id)
        for item in records:
            check_numbers(
                item, ("duration", "distance", "speed", "calories", "heart_rate", "incline")
            )
        valid = RecordFilters.filter_cardio(records)
        count = self.cardio.replace(session_id, exercise_id, valid)
        return {"count": count}

    def get_cardio_records(
        self, user_id: str, session_id: str, exercise_id: str
    ) -> list[dict]:
        if exercise_id.startswith("mock-"):
            return []
        self.owned_session(user_id, session_id)
        return self.cardio.fetch_for_exercise(session_id, exercise_id)

    def delete_exercise_sets(self, user_id: str, session_id: str, exercise_id: str) -> int:
        self.owned_session(user_id, session_id)
        return self.sets.delete_for_exercise(session_id, exercise_id)

    def delete_cardio_records(self, user_id: str, session_id: str, exercise_id: str) -> int:
        self.owned_session(user_id, session_id)
        return self.cardio.delete_for_exercise(session_id, exercise_id)

    def get_session_details(self, user_id: str, session_id: str) -> dict:
        session = self.owned_session(user_id, session_id)
        workout: dict[str, list[dict]] = {}
        for row in self.sets.fetch_for_session(session_id):
            workout.setdefault(row["exercise_id"], []).append(row)
        cardio: dict[str, list[dict]] = {}
        for row in self.cardio.fetch_for_session(session_id):
            cardio.setdefault(row["exercise_id"], []).append(row)
        for rows in workout.values():
            rows.sort(key=lambda r: r["set_order"])
        return {
            "session": session,
            "workout_exercises": [
                {"exercise_id": eid, "sets": rows} for eid, rows in workout.items()
            ],
            "cardio_exercises": [
                {"exercise_id": eid, "records": rows} for eid, rows in cardio.items()
            ],
        }

    def get_body_parts_by_date_range(
        self, user_id: str, start_date: str, end_date: str
    ) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        rows = self.sessions.body_parts_by_date(
            user_id, check_date(start_date), check_date(end_date)
        )
        for date, body_part in rows:
            result.setdefault(date, []).append(body_part)
        return result

    def export_all_data(self, user_id: str) -> str:
        rows = []
        for date, name, part, weight, reps, order, duration, note in self.sets.export_rows(user_id):
            rows.append(
                [date, name, part, "strength", weight, reps, order, duration or "", "", "", note or ""]
            )
        for date, name, part, duration, distance, calories, note in self.cardio.export_rows(user_id):
            rows.append(
                [date, name, part, "cardio", "", "", "", duration, distance or "", calories or "", note or ""]
            )
        rows.sort(key=lambda r: r[0], reverse=True)
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerow(EXPORT_HEADER)
        writer.writerows(rows)
        return output.getvalue()

    def delete_user_all_data(self, user_id: str) -> dict:
        deleted = self.sessions.delete_for_user(user_id)
        self.history.delete_for_user(user_id)
        logger.info("deleted %s sessions and profile history for user %s", deleted, user_id)
        return {"deleted_sessions": deleted}
