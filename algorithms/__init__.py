from .body_metrics import BodyMetrics
from .big3 import Big3, DEFAULT_BIG3_TARGETS
from .progress import ProgressTools, PRESETS
from .records import RecordFilters
from .weight_converter import WeightConverter

__all__ = [
    "BodyMetrics",
    "Big3",
    "DEFAULT_BIG3_TARGETS",
    "ProgressTools",
    "PRESETS",
    "RecordFilters",
    "WeightConverter",
]
