import datetime
from typing import Iterable, Mapping, Optional

RecordGroups = Mapping[tuple[str, str], list[dict]]


class RecordFilters:
    """Validity rules and lookups over sets and cardio records.

    Record collections are passed around as ``{(date, exercise_id): records}``
    so that server rows and guest local storage share one shape.
    """

    STORAGE_PREFIXES = ("workout", "cardio")

    @staticmethod
    def positive(item: dict, key: str) -> bool:
        """Non-numeric values never count as recorded data."""
        value = item.get(key)
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0

    @classmethod
    def is_valid_set(cls, item: dict) -> bool:
        return any(cls.positive(item, k) for k in ("weight", "reps", "duration"))

    @classmethod
    def is_valid_cardio(cls, item: dict) -> bool:
        return any(
            cls.positive(item, k)
            for k in ("duration", "distance", "calories", "heart_rate", "incline")
        )

    @classmethod
    def filter_sets(cls, sets: Iterable[dict]) -> list[dict]:
        return [s for s in sets if cls.is_valid_set(s)]

    @classmethod
    def filter_cardio(cls, records: Iterable[dict]) -> list[dict]:
        return [r for r in records if cls.is_valid_cardio(r)]

    @staticmethod
    def group_by_day(rows: Iterable[dict]) -> dict[tuple[str, str], list[dict]]:
        groups: dict[tuple[str, str], list[dict]] = {}
        for row in rows:
            groups.setdefault((row["date"], row["exercise_id"]), []).append(row)
        return groups

    @classmethod
    def parse_storage_key(cls, key: str) -> Optional[tuple[str, str, str]]:
        """Split ``workout_YYYY-MM-DD_<id>`` into (kind, date, exercise id).

        Exercise ids may themselves contain underscores.
        """
        parts = key.split("_")
        if len(parts) < 3 or parts[0] not in cls.STORAGE_PREFIXES:
            return None
        try:
            datetime.date.fromisoformat(parts[1])
        except ValueError:
            return None
        exercise_id = "_".join(parts[2:])
        if not exercise_id:
            return None
        return parts[0], parts[1], exercise_id

    @classmethod
    def last_trained_dates(
        cls, set_groups: RecordGroups, cardio_groups: RecordGroups | None = None
    ) -> dict[str, str]:
        """Latest date with valid data for every exercise."""
        result: dict[str, str] = {}
        sources = [(set_groups, cls.is_valid_set), (cardio_groups or {}, cls.is_valid_cardio)]
        for groups, is_valid in sources:
            for (date, exercise_id), records in groups.items():
                if not any(is_valid(r) for r in records):
                    continue
                if exercise_id not in result or date > result[exercise_id]:
                    result[exercise_id] = date
        return result

    @staticmethod
    def last_trained_by_body_part(
        exercises: Iterable[dict], last_trained: Mapping[str, str]
    ) -> dict[str, Optional[str]]:
        result: dict[str, Optional[str]] = {}
        for exercise in exercises:
            part = exercise["body_part"]
            result.setdefault(part, None)
            date = last_trained.get(exercise["id"])
            if date and (result[part] is None or date > result[part]):
                result[part] = date
        return result

    @classmethod
    def previous_record(
        cls, set_groups: RecordGroups, exercise_id: str, current_date: str
    ) -> Optional[dict]:
        """Sets from the latest earlier day that has valid data."""
        latest: Optional[str] = None
        for (date, eid), records in set_groups.items():
            if eid != exercise_id or date >= current_date:
                continue
            if not any(cls.is_valid_set(r) for r in records):
                continue
            if latest is None or date > latest:
                latest = date
        if latest is None:
            return None
        return {"date": latest, "sets": list(set_groups[(latest, exercise_id)])}

    @classmethod
    def calculate_max_weights(
        cls, set_groups: RecordGroups, include_warmup: bool = True
    ) -> dict[str, float]:
        result: dict[str, float] = {}
        for (_, exercise_id), records in set_groups.items():
            for r in records:
                if not include_warmup and r.get("is_warmup"):
                    continue
                if not cls.positive(r, "weight"):
                    continue
                weight = r["weight"]
                if weight > result.get(exercise_id, 0):
                    result[exercise_id] = float(weight)
        return result
