class WeightConverter:
    """Utility for converting between kg and lb."""

    KG_TO_LB = 2.20462

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @classmethod
    def to_display(cls, kg: float, unit: str) -> float:
        """Convert a stored kilogram value for display in ``unit``."""
        if unit == "lb":
            return cls.kg_to_lb(kg)
        return round(kg, 2)

    @classmethod
    def from_display(cls, value: float, unit: str) -> float:
        """Convert a value entered in ``unit`` back to kilograms."""
        if unit == "lb":
            return cls.lb_to_kg(value)
        return value
