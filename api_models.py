from typing import Optional

from pydantic import BaseModel, Field


class SignUpRequest(BaseModel):
    name: str
    email: str
    password: str


class SignInRequest(BaseModel):
    email: str
    password: str


class PasswordRequest(BaseModel):
    password: str
    current_password: Optional[str] = None


class GoogleLinkRequest(BaseModel):
    account_id: str


class ProfileUpdate(BaseModel):
    height: Optional[float] = Field(default=None, ge=0, le=300)
    weight: Optional[float] = Field(default=None, ge=0)
    body_fat: Optional[float] = Field(default=None, ge=0, le=100)
    muscle_mass: Optional[float] = Field(default=None, ge=0)
    big3_target_bench_press: Optional[float] = Field(default=None, ge=0)
    big3_target_squat: Optional[float] = Field(default=None, ge=0)
    big3_target_deadlift: Optional[float] = Field(default=None, ge=0)


class ExerciseCreate(BaseModel):
    id: Optional[str] = None
    name: str
    name_en: Optional[str] = None
    body_part: str
    muscle_sub_group: Optional[str] = None
    primary_equipment: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    difficulty_level: Optional[str] = None
    equipment_required: list[str] = []


class VisibilityUpdate(BaseModel):
    visible: bool


class SessionUpdate(BaseModel):
    note: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)


class SetEntry(BaseModel):
    weight: Optional[float] = Field(default=None, ge=0)
    reps: int = Field(default=0, ge=0)
    rpe: Optional[float] = Field(default=None, ge=0, le=10)
    is_warmup: bool = False
    rest_seconds: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    failure: bool = False
    duration: Optional[int] = Field(default=None, ge=0)


class CardioEntry(BaseModel):
    duration: int = Field(default=0, ge=0)
    distance: Optional[float] = Field(default=None, ge=0)
    speed: Optional[float] = Field(default=None, ge=0)
    calories: Optional[int] = Field(default=None, ge=0)
    heart_rate: Optional[int] = Field(default=None, ge=0)
    incline: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class ProgressPoint(BaseModel):
    date: str
    max_weight: float


class GuestStorage(BaseModel):
    storage: dict[str, str]
