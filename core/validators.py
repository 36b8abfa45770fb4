"""
core/validators.py

Client-side input validation.

Each ``validate_*`` function returns ``None`` when the value is acceptable
and an error message otherwise. ``require`` turns a message into a
:class:`core.errors.ValidationError` so repositories can reject input
before any network call.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path

from core import constants as C
from core.errors import ValidationError

_EMAIL_LOCAL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+$")
_EMAIL_DOMAIN_LABEL_RE = re.compile(r"^[a-zA-Z0-9\-]+$")
_TLD_RE = re.compile(r"^[a-zA-Z]{2,}$")
_NAME_RE = re.compile(r"^[a-zA-Z\s'\-.]+$")
_PATIENT_CODE_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_DIGITS_RE = re.compile(r"^\d+$")
_PASSWORD_SPECIAL_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


def require(field: str, message: str | None) -> None:
    """Raise :class:`ValidationError` for *field* if *message* is set."""
    if message is not None:
        raise ValidationError(field, message)


# ---------------------------------------------------------------------------
# Account fields
# ---------------------------------------------------------------------------


def validate_email(value: str | None) -> str | None:
    if value is None or not value.strip():
        return "Email is required"
    email = value.strip()
    if " " in email:
        return "Email must not contain spaces"
    if email.count("@") != 1:
        return "Email must contain a single @"

    local, domain = email.split("@")
    if not local:
        return "Email username is missing"
    if len(local) > 64:
        return "Email username is too long"
    if local.startswith(".") or local.endswith(".") or ".." in local:
        return "Email username has misplaced dots"
    if not _EMAIL_LOCAL_RE.match(local):
        return "Email username contains invalid characters"

    if not domain or "." not in domain:
        return "Email domain is invalid"
    if len(domain) > 255 or ".." in domain:
        return "Email domain is invalid"
    labels = domain.split(".")
    for label in labels:
        if not label or label.startswith("-") or label.endswith("-"):
            return "Email domain is invalid"
        if not _EMAIL_DOMAIN_LABEL_RE.match(label):
            return "Email domain is invalid"
    if not _TLD_RE.match(labels[-1]):
        return "Email domain extension is invalid"
    return None


def validate_password(value: str | None) -> str | None:
    if not value:
        return "Password is required"
    if len(value) < C.PASSWORD_MIN_LENGTH:
        return f"Password must be at least {C.PASSWORD_MIN_LENGTH} characters"
    if not re.search(r"[A-Za-z]", value):
        return "Password must contain a letter"
    if not re.search(r"\d", value):
        return "Password must contain a number"
    return None


def validate_confirm_password(password: str | None, confirm: str | None) -> str | None:
    if not confirm:
        return "Password confirmation is required"
    if password != confirm:
        return "Passwords do not match"
    return None


def password_strength(value: str) -> int:
    """Score a password from 0 (empty) to 5 (long, mixed case, digit, symbol)."""
    if not value:
        return 0
    score = 0
    if len(value) >= C.PASSWORD_MIN_LENGTH:
        score += 1
    if re.search(r"[a-z]", value) and re.search(r"[A-Z]", value):
        score += 1
    if re.search(r"\d", value):
        score += 1
    if _PASSWORD_SPECIAL_RE.search(value):
        score += 1
    if len(value) >= 12:
        score += 1
    return score


def validate_otp(value: str | None) -> str | None:
    if not value:
        return "OTP is required"
    if len(value) != C.OTP_LENGTH or not _DIGITS_RE.match(value):
        return f"OTP must be exactly {C.OTP_LENGTH} digits"
    return None


def validate_phone(value: str | None) -> str | None:
    """Phone numbers are optional; when present they must be Indonesian mobile numbers."""
    if value is None or not value.strip():
        return None
    phone = value.strip()
    if not _DIGITS_RE.match(phone):
        return "Phone number may only contain digits"
    if not phone.startswith("08"):
        return "Phone number must start with 08"
    if not 10 <= len(phone) <= 15:
        return "Phone number must be 10-15 digits"
    return None


def validate_name(value: str | None, field: str = "Name") -> str | None:
    if value is None or not value.strip():
        return f"{field} is required"
    name = value.strip()
    if len(name) < 2:
        return f"{field} must be at least 2 characters"
    if not _NAME_RE.match(name):
        return f"{field} contains invalid characters"
    return None


def validate_required(value: str | None, field: str) -> str | None:
    if value is None or not str(value).strip():
        return f"{field} is required"
    return None


# ---------------------------------------------------------------------------
# Clinical fields
# ---------------------------------------------------------------------------


def validate_patient_code(value: str | None) -> str | None:
    if value is None or not value.strip():
        return "Patient code is required"
    code = value.strip()
    if len(code) < C.PATIENT_CODE_MIN_LENGTH:
        return f"Patient code must be at least {C.PATIENT_CODE_MIN_LENGTH} characters"
    if len(code) > C.PATIENT_CODE_MAX_LENGTH:
        return f"Patient code must be at most {C.PATIENT_CODE_MAX_LENGTH} characters"
    if not _PATIENT_CODE_RE.match(code):
        return "Patient code may only contain letters, digits, '-' and '_'"
    return None


def _as_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip()[:10])


def validate_date_of_birth(
    value: date | datetime | str | None,
    today: date | None = None,
) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return "Date of birth is required"
    try:
        dob = _as_date(value)
    except ValueError:
        return "Date of birth must be an ISO date (YYYY-MM-DD)"
    today = today or date.today()
    if dob > today:
        return "Date of birth cannot be in the future"
    age_days = (today - dob).days
    if age_days < 365:
        return "Patient must be at least 1 year old"
    if age_days > 150 * 365:
        return "Date of birth is too far in the past"
    return None


def validate_gender(value: str | None) -> str | None:
    if value not in C.GENDERS:
        return "Gender must be Male or Female"
    return None


def validate_side_eye(value: str | None) -> str | None:
    if value not in C.EYE_SIDES:
        return "Eye side must be Right or Left"
    return None


def validate_classification(value: int | None) -> str | None:
    if value is None:
        return None
    if not 0 <= value <= 4:
        return "Classification must be between 0 and 4"
    return None


def validate_age_range(age_min: int | None, age_max: int | None) -> str | None:
    for age in (age_min, age_max):
        if age is not None and age < 0:
            return "Age filter must not be negative"
    if age_min is not None and age_max is not None and age_min > age_max:
        return "Minimum age must not exceed maximum age"
    return None


def validate_image_file(path: Path, max_bytes: int) -> str | None:
    """Check presence, extension and size of an image before upload."""
    if not path.is_file():
        return "Image file not found"
    ext = path.suffix.lower().lstrip(".")
    if ext not in C.ALLOWED_IMAGE_EXTENSIONS + C.CONVERTIBLE_IMAGE_EXTENSIONS:
        return "Image must be JPG, PNG or TIFF"
    if path.stat().st_size > max_bytes:
        return f"Image must be at most {max_bytes // (1024 * 1024)} MB"
    return None
