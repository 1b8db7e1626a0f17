from typing import Optional


class BodyMetrics:
    """Body mass index and body composition helpers."""

    BMI_MIN: float = 18.5
    BMI_MAX: float = 30.0

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def calculate_bmi(height_cm: float | None, weight_kg: float | None) -> float:
        """Return BMI rounded to one decimal, or 0 when inputs are missing."""
        if not height_cm or not weight_kg or height_cm <= 0 or weight_kg <= 0:
            return 0.0
        height_m = height_cm / 100
        return round(weight_kg / (height_m * height_m), 1)

    @staticmethod
    def bmi_category(bmi: float) -> str:
        if bmi < 18.5:
            return "underweight"
        if bmi < 25:
            return "normal"
        if bmi < 30:
            return "overweight"
        return "obese"

    @classmethod
    def bmi_percentage(cls, bmi: float) -> float:
        """Position of ``bmi`` on the 18.5-30 gauge as a 0-100 percentage."""
        span = cls.BMI_MAX - cls.BMI_MIN
        pct = (bmi - cls.BMI_MIN) / span * 100
        return cls.clamp(pct, 0.0, 100.0)

    @staticmethod
    def body_composition(
        weight: float | None,
        body_fat: float | None,
        muscle_mass: float | None,
    ) -> Optional[dict]:
        """Split body weight into fat, muscle and other mass.

        Returns ``None`` when the inputs cannot describe a real body, e.g.
        when fat and muscle together exceed the total weight.
        """
        if weight is None or body_fat is None or muscle_mass is None:
            return None
        if weight <= 0 or body_fat < 0 or body_fat > 100 or muscle_mass < 0:
            return None
        fat_mass = weight * body_fat / 100
        if fat_mass + muscle_mass > weight:
            return None
        other_mass = weight - fat_mass - muscle_mass
        return {
            "fat_mass": round(fat_mass, 1),
            "muscle_mass": round(muscle_mass, 1),
            "other_mass": round(other_mass, 1),
            "fat_percentage": round(fat_mass / weight * 100, 1),
            "muscle_percentage": round(muscle_mass / weight * 100, 1),
            "other_percentage": round(other_mass / weight * 100, 1),
        }
