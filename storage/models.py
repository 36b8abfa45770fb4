"""
storage/models.py

Pydantic v2 data models for the DR screening client.

Field names mirror the backend's snake_case JSON so that
``Model.model_validate(response.json())`` works without aliases, and
``model_dump(mode="json")`` is the format persisted in the local cache.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from core import classification as grading


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Gender(str, Enum):
    male = "Male"
    female = "Female"


class EyeSide(str, Enum):
    right = "Right"
    left = "Left"


class SessionState(str, Enum):
    """Lifecycle of a server-side detection session."""
    started = "started"
    saved = "saved"
    cancelled = "cancelled"


def _initials(name: str) -> str:
    parts = [p for p in name.split() if p]
    if not parts:
        return "?"
    if len(parts) == 1:
        return parts[0][0].upper()
    return (parts[0][0] + parts[-1][0]).upper()


def age_on(dob: date, today: date) -> int:
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthTokens(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str = ""
    success: bool = True


class User(BaseModel):
    """The signed-in clinician, as returned by ``/auth/me`` and ``/users/me``."""
    id: int
    full_name: str
    email: str
    phone_number: str | None = None
    profession: str | None = None
    date_of_birth: date | None = None
    photo_url: str | None = None
    province_name: str | None = None
    city_name: str | None = None
    district_name: str | None = None
    village_name: str | None = None
    detailed_address: str | None = None
    assignment_location: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    @property
    def initials(self) -> str:
        return _initials(self.full_name)


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------


class Patient(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: int
    patient_code: str = Field(description="Business key, unique per clinic.")
    name: str
    gender: Gender
    date_of_birth: date
    age: int | None = None
    created_by_user_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_male(self) -> bool:
        return self.gender == Gender.male.value

    @property
    def is_female(self) -> bool:
        return self.gender == Gender.female.value

    @property
    def display_code(self) -> str:
        return f"#{self.patient_code}"

    @property
    def initials(self) -> str:
        return _initials(self.name)

    def computed_age(self, today: date | None = None) -> int:
        """Server-provided age when present, otherwise derived from date of birth."""
        if self.age is not None:
            return self.age
        return age_on(self.date_of_birth, today or date.today())


# ---------------------------------------------------------------------------
# Detections
# ---------------------------------------------------------------------------


class _GradedResult(BaseModel):
    """Display fields shared by saved detections and previews."""
    patient_code: str | None = None
    patient_name: str | None = None
    patient_gender: str | None = None
    patient_age: int | None = None
    side_eye: str
    classification: int
    predicted_label: str
    confidence: float = Field(ge=0.0, le=1.0)
    description: str | None = None
    image_url: str | None = None
    detected_at: datetime

    @property
    def confidence_percentage(self) -> str:
        return f"{self.confidence * 100:.1f}%"

    @property
    def label(self) -> str:
        return grading.label_for(self.classification)

    @property
    def severity_level(self) -> str:
        return grading.severity_level_for(self.classification)

    @property
    def risk_level(self) -> str:
        return grading.risk_level_for(self.classification)

    @property
    def color(self) -> str:
        return grading.color_for(self.classification)


class Detection(_GradedResult):
    id: int
    patient_id: int
    created_at: datetime | None = None


class DetectionPreview(_GradedResult):
    """Unsaved model output returned by ``/detections/start``; never cached."""
    session_id: str
    all_probabilities: dict[str, float] = Field(default_factory=dict)

    @property
    def sorted_probabilities(self) -> list[tuple[str, float]]:
        return sorted(self.all_probabilities.items(), key=lambda kv: kv[1], reverse=True)


class DetectionSession(BaseModel):
    """
    Handle for an in-flight server-side detection.

    Returned by ``start_detection`` and passed back to ``save_detection``
    or ``cancel_detection``. A session is closed once saved or cancelled
    and must not be reused.
    """
    preview: DetectionPreview
    started_at: datetime
    ttl_seconds: int = 15 * 60
    state: SessionState = SessionState.started

    @property
    def session_id(self) -> str:
        return self.preview.session_id

    @property
    def expires_at(self) -> datetime:
        return self.started_at + timedelta(seconds=self.ttl_seconds)

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.started

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(tz=timezone.utc)
        return now >= self.expires_at

    def mark_saved(self) -> None:
        self.state = SessionState.saved

    def mark_cancelled(self) -> None:
        self.state = SessionState.cancelled


class DetectionFilters(BaseModel):
    """Query parameters accepted by ``GET /detections/``."""
    classification: int | None = Field(default=None, ge=0, le=4)
    age_min: int | None = Field(default=None, ge=0)
    age_max: int | None = Field(default=None, ge=0)
    gender: Gender | None = None
    period: str | None = None
    patient_code: str | None = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_empty(self) -> bool:
        return not any(v is not None for v in self.model_dump().values())

    def as_params(self) -> dict[str, object]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class ClassificationBreakdown(BaseModel):
    no_dr: int = 0
    mild: int = 0
    moderate: int = 0
    severe: int = 0
    proliferative: int = 0

    @property
    def counts(self) -> list[int]:
        return [self.no_dr, self.mild, self.moderate, self.severe, self.proliferative]

    @property
    def total(self) -> int:
        return sum(self.counts)

    def count_for(self, classification: int) -> int:
        if classification not in grading.GRADES:
            return 0
        return self.counts[classification]

    def percentage(self, classification: int) -> float:
        return grading.percentage(self.count_for(classification), self.total)

    def formatted_percentage(self, classification: int) -> str:
        return grading.format_percentage(self.count_for(classification), self.total)


class DashboardStats(BaseModel):
    total_patients: int = 0
    total_detections: int = 0
    detections_today: int = 0
    breakdown: ClassificationBreakdown = Field(default_factory=ClassificationBreakdown)

    @classmethod
    def empty(cls) -> "DashboardStats":
        return cls()

    @property
    def has_data(self) -> bool:
        return self.total_patients > 0 or self.total_detections > 0

    @property
    def average_detections_per_patient(self) -> float:
        if self.total_patients == 0:
            return 0.0
        return self.total_detections / self.total_patients


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class Location(BaseModel):
    """Indonesian administrative region (province, regency, district or village)."""
    code: str
    name: str

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Location) and other.code == self.code

    def __hash__(self) -> int:
        return hash(self.code)
