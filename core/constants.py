"""
core/constants.py

Backend endpoint paths, storage keys and domain constants.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Auth endpoints
# ---------------------------------------------------------------------------

SIGNUP = "/auth/signup"
VERIFY_OTP = "/auth/verify-otp"
RESEND_OTP = "/auth/resend-otp"
SIGNIN = "/auth/signin"
SIGNIN_VERIFY_OTP = "/auth/signin/verify-otp"
REFRESH_TOKEN = "/auth/refresh"
SIGNOUT = "/auth/signout"
FORGOT_PASSWORD = "/auth/forgot-password"
RESET_PASSWORD = "/auth/reset-password"
AUTH_ME = "/auth/me"
UPDATE_PROFILE_PHOTO = "/auth/update-profile-photo"
DELETE_PROFILE_PHOTO = "/auth/delete-profile-photo"

# Requests to these paths never carry a bearer token.
PUBLIC_ENDPOINTS: frozenset[str] = frozenset({
    SIGNUP,
    VERIFY_OTP,
    RESEND_OTP,
    SIGNIN,
    SIGNIN_VERIFY_OTP,
    FORGOT_PASSWORD,
    RESET_PASSWORD,
})

# ---------------------------------------------------------------------------
# Resource endpoints
# ---------------------------------------------------------------------------

USERS_ME = "/users/me"

PATIENTS = "/patients/"
DETECTIONS = "/detections/"
DETECTIONS_START = "/detections/start"
DETECTIONS_SAVE = "/detections/save"
DASHBOARD_STATS = "/dashboard/stats"


def patient_by_code(code: str) -> str:
    return f"/patients/{code}"


def detection_by_id(detection_id: int) -> str:
    return f"/detections/{detection_id}"


def detection_cancel(session_id: str) -> str:
    return f"/detections/cancel/{session_id}"


def patient_progress_chart(patient_id: int) -> str:
    return f"/detections/patients/{patient_id}/progress-chart"


# ---------------------------------------------------------------------------
# Location API (relative to Settings.location_base_url)
# ---------------------------------------------------------------------------

PROVINCES = "/provinces.json"


def regencies(province_code: str) -> str:
    return f"/regencies/{province_code}.json"


def districts(regency_code: str) -> str:
    return f"/districts/{regency_code}.json"


def villages(district_code: str) -> str:
    return f"/villages/{district_code}.json"


# ---------------------------------------------------------------------------
# Local storage keys
# ---------------------------------------------------------------------------

KEY_ACCESS_TOKEN = "access_token"
KEY_REFRESH_TOKEN = "refresh_token"
KEY_IS_LOGGED_IN = "is_logged_in"

BOX_USER = "user"
BOX_PATIENTS = "patients"
BOX_DETECTIONS = "detections"
BOX_DASHBOARD = "dashboard"
BOX_PROVINCES = "provinces"

# ---------------------------------------------------------------------------
# Domain values
# ---------------------------------------------------------------------------

GENDER_MALE = "Male"
GENDER_FEMALE = "Female"
GENDERS = (GENDER_MALE, GENDER_FEMALE)

EYE_RIGHT = "Right"
EYE_LEFT = "Left"
EYE_SIDES = (EYE_RIGHT, EYE_LEFT)

PATIENT_CODE_MIN_LENGTH = 3
PATIENT_CODE_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 8
OTP_LENGTH = 6

ALLOWED_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png")
CONVERTIBLE_IMAGE_EXTENSIONS = ("tif", "tiff")
