import calendar
import datetime
from typing import Iterable

PRESETS = ("week", "month", "3months", "6months", "year", "all")


class ProgressTools:
    """Date ranges and max-weight progression extraction for charts."""

    EPOCH = datetime.date(1970, 1, 1)

    @staticmethod
    def _sub_months(day: datetime.date, months: int) -> datetime.date:
        month_index = day.year * 12 + (day.month - 1) - months
        year, month = divmod(month_index, 12)
        month += 1
        last_day = calendar.monthrange(year, month)[1]
        return datetime.date(year, month, min(day.day, last_day))

    @classmethod
    def start_date(
        cls, preset: str, today: datetime.date | None = None
    ) -> datetime.date:
        """Return the first day covered by ``preset``.

        Unknown presets behave like ``month``.
        """
        today = today or datetime.date.today()
        if preset == "week":
            return today - datetime.timedelta(days=7)
        if preset == "3months":
            return cls._sub_months(today, 3)
        if preset == "6months":
            return cls._sub_months(today, 6)
        if preset == "year":
            return cls._sub_months(today, 12)
        if preset == "all":
            return cls.EPOCH
        return cls._sub_months(today, 1)

    @staticmethod
    def extract_max_weight_updates(rows: Iterable[dict]) -> list[dict]:
        """Keep only the dates on which the running max weight increased.

        ``rows`` must be sorted by date ascending and carry ``date`` and
        ``max_weight`` keys.
        """
        previous_max = 0.0
        result: list[dict] = []
        for row in rows:
            max_weight = float(row["max_weight"])
            if max_weight > previous_max:
                result.append({"date": row["date"], "max_weight": max_weight})
                previous_max = max_weight
        return result

    @classmethod
    def merge_progress(
        cls, db_rows: Iterable[dict], local_rows: Iterable[dict]
    ) -> list[dict]:
        """Union two progress series by date and re-extract the updates."""
        by_date: dict[str, float] = {}
        for row in list(db_rows) + list(local_rows):
            weight = float(row["max_weight"])
            if row["date"] not in by_date or weight > by_date[row["date"]]:
                by_date[row["date"]] = weight
        merged = [{"date": d, "max_weight": w} for d, w in sorted(by_date.items())]
        return cls.extract_max_weight_updates(merged)
