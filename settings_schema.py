from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

StatsPreset = Literal["week", "month", "3months", "6months", "year", "all"]


class SettingsSchema(BaseModel):
    weight_unit: Literal["kg", "lb"] = "kg"
    language: str = "ja"
    default_stats_preset: StatsPreset = "month"
    session_ttl_days: int = Field(default=7, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: Optional[str] = None
    auth_secret: Optional[str | bool] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str | bool] = None

def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
