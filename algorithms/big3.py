from typing import Iterable, Optional

DEFAULT_BIG3_TARGETS = {
    "bench_press": 100.0,
    "squat": 120.0,
    "deadlift": 140.0,
}


class Big3:
    """Identification and target tracking for bench press, squat and deadlift."""

    LIFTS = (
        ("bench_press", "Bench Press", "#3b82f6", ("bench", "ベンチ")),
        ("squat", "Squat", "#22c55e", ("squat", "スクワット")),
        ("deadlift", "Deadlift", "#ef4444", ("deadlift", "デッド")),
    )

    @classmethod
    def identify(cls, exercises: Iterable[dict]) -> dict[str, Optional[str]]:
        """Map each lift to the id of the first matching Big3 exercise."""
        candidates = [e for e in exercises if e.get("is_big3")]
        result: dict[str, Optional[str]] = {}
        for key, _, _, keywords in cls.LIFTS:
            result[key] = None
            for exercise in candidates:
                names = f"{exercise.get('name') or ''} {exercise.get('name_en') or ''}".lower()
                if any(k in names for k in keywords):
                    result[key] = exercise["id"]
                    break
        return result

    @staticmethod
    def targets(profile: dict | None) -> dict[str, float]:
        """Return per-lift targets, falling back to the defaults."""
        profile = profile or {}
        return {
            key: float(profile.get(f"big3_target_{key}") or default)
            for key, default in DEFAULT_BIG3_TARGETS.items()
        }

    @classmethod
    def create_data(
        cls, weights: dict[str, float], targets: dict[str, float]
    ) -> list[dict]:
        data = []
        for key, name, color, _ in cls.LIFTS:
            current = float(weights.get(key) or 0)
            target = float(targets.get(key) or DEFAULT_BIG3_TARGETS[key])
            progress = min(round(current / target * 100, 1), 100.0) if target > 0 else 0.0
            data.append(
                {
                    "key": key,
                    "name": name,
                    "current": current,
                    "target": target,
                    "progress": progress,
                    "color": color,
                }
            )
        return data
