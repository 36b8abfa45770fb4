"""
core/errors.py

Exception types and error-key mapping for the DR screening client.

Every failure that reaches a caller is one of:

ApiError         -- the backend (or the transport) failed; carries a stable
                    ``error_key`` such as ``error_session_expired``.
ValidationError  -- local input was rejected before any network call.
RepositoryError  -- an unexpected failure wrapped by a repository.
ExportError      -- a PDF/Excel report could not be produced.

Status responses are classified in two passes: a structured ``code`` /
``error_code`` field in the response body is used verbatim when present;
otherwise the legacy keyword rules inspect the human-readable ``detail``.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception types
# ---------------------------------------------------------------------------


class ApiError(Exception):
    """A backend or transport failure with a stable error key."""

    def __init__(
        self,
        error_key: str,
        status_code: int | None = None,
        detail: str | None = None,
        validation_errors: dict[str, str] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(error_key)
        self.error_key = error_key
        self.status_code = status_code
        self.detail = detail
        self.validation_errors = validation_errors or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.error_key} (HTTP {self.status_code})"
        return self.error_key

    @classmethod
    def client_error(cls, error_key: str, detail: str | None = None) -> "ApiError":
        """Build an error raised locally rather than by the server."""
        return cls(error_key, detail=detail)

    @property
    def is_network_error(self) -> bool:
        return self.error_key in NETWORK_ERROR_KEYS

    @property
    def is_auth_error(self) -> bool:
        key = self.error_key
        return (
            self.status_code in (401, 403)
            or "auth" in key
            or "credential" in key
            or "token" in key
        )

    @property
    def is_validation_error(self) -> bool:
        return self.status_code == 422 or self.error_key == "error_validation"

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    @property
    def category(self) -> str:
        if self.is_network_error:
            return "network"
        if self.is_auth_error:
            return "auth"
        if self.is_validation_error:
            return "validation"
        if self.is_server_error:
            return "server"
        if self.status_code is not None and 400 <= self.status_code < 500:
            return "client"
        return "unknown"


class ValidationError(ValueError):
    """Local input rejected before reaching the backend."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class RepositoryError(RuntimeError):
    """Unexpected failure inside a repository, wrapped with context."""


class ExportError(RuntimeError):
    """Report generation or hand-off failed."""


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------

NETWORK_ERROR_KEYS = frozenset({
    "error_connection_timeout",
    "error_send_timeout",
    "error_receive_timeout",
    "error_request_cancelled",
    "error_no_internet",
    "error_security_certificate",
})


def error_from_transport(exc: requests.RequestException) -> ApiError:
    """
    Map a requests transport exception to an :class:`ApiError`.

    Order matters: ``ConnectTimeout`` and ``SSLError`` are subclasses of
    ``ConnectionError``.
    """
    if isinstance(exc, requests.ConnectTimeout):
        key = "error_connection_timeout"
    elif isinstance(exc, requests.ReadTimeout):
        key = "error_receive_timeout"
    elif isinstance(exc, requests.Timeout):
        key = "error_send_timeout"
    elif isinstance(exc, requests.exceptions.SSLError):
        key = "error_security_certificate"
    elif isinstance(exc, requests.ConnectionError):
        key = "error_no_internet"
    else:
        key = "error_unknown"
    logger.warning("Transport failure mapped to %s: %s", key, exc)
    return ApiError(key, cause=exc)


# ---------------------------------------------------------------------------
# Status failures
# ---------------------------------------------------------------------------


def _body_of(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def extract_detail(body: Any) -> str:
    """Return the lower-cased human-readable message from a response body."""
    if isinstance(body, dict):
        for field in ("detail", "message", "error"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value.lower()
            if isinstance(value, list) and value:
                # FastAPI validation errors: [{"loc": [...], "msg": "..."}]
                first = value[0]
                if isinstance(first, dict) and first.get("msg"):
                    return str(first["msg"]).lower()
                return str(first).lower()
    if isinstance(body, str):
        return body.lower()
    return ""


def extract_validation_errors(body: Any) -> dict[str, str]:
    """
    Flatten ``{"errors": {field: [msg, ...]}}`` into ``{field: first_msg}``.

    Non-conforming bodies yield an empty dict.
    """
    if not isinstance(body, dict):
        return {}
    errors = body.get("errors")
    if not isinstance(errors, dict):
        return {}
    result: dict[str, str] = {}
    for field, messages in errors.items():
        if isinstance(messages, list) and messages:
            result[str(field)] = str(messages[0])
        elif isinstance(messages, str):
            result[str(field)] = messages
    return result


def _structured_key(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    code = body.get("error_code") or body.get("code")
    if not isinstance(code, str) or not code.strip():
        return None
    code = code.strip().lower()
    return code if code.startswith("error_") else f"error_{code}"


def _has(text: str, *words: str) -> bool:
    return any(w in text for w in words)


def _key_400(d: str) -> str:
    if "email" in d:
        if _has(d, "not found", "tidak ditemukan"):
            return "error_email_not_found"
        if _has(d, "invalid", "tidak valid"):
            return "error_email_invalid"
        if _has(d, "exists", "already"):
            return "error_email_already_exists"
    if "otp" in d and _has(d, "invalid", "expired"):
        return "error_invalid_otp"
    if "patient" in d:
        if "not found" in d:
            return "error_patient_not_found"
        if "exists" in d:
            return "error_patient_already_exists"
    if "session" in d:
        if "not found" in d:
            return "error_session_not_found"
        if "expired" in d:
            return "error_session_expired"
    if "image" in d:
        if "size" in d:
            return "error_image_too_large"
        if "format" in d:
            return "error_image_invalid_format"
    if "photo" in d and "delete" in d:
        return "error_no_profile_photo"
    return "error_bad_request"


_CREDENTIAL_WORDS = (
    "incorrect",
    "wrong",
    "invalid credentials",
    "salah",
    "email or password",
    "credential",
)


def _key_401(d: str) -> str:
    if not d or _has(d, *_CREDENTIAL_WORDS):
        return "error_invalid_credentials"
    if "token" in d:
        if "expired" in d:
            return "error_token_expired"
        if "revoked" in d:
            return "error_token_revoked"
        if "invalid" in d:
            return "error_invalid_credentials"
    if _has(d, "not authenticated", "belum login"):
        return "error_not_authenticated"
    return "error_invalid_credentials"


def _key_403(d: str) -> str:
    return "error_no_permission" if "permission" in d else "error_forbidden"


def _key_404(d: str) -> str:
    if "session" in d:
        return "error_session_expired" if "expired" in d else "error_session_not_found"
    if "user" in d:
        return "error_user_not_found"
    if "patient" in d:
        return "error_patient_not_found"
    if "detection" in d:
        return "error_detection_not_found"
    return "error_not_found"


def _key_409(d: str) -> str:
    if "email" in d:
        return "error_email_already_exists"
    if "patient" in d:
        return "error_patient_already_exists"
    return "error_conflict"


def _key_422(d: str) -> str:
    if "email" in d:
        return "error_email_invalid"
    if "phone" in d:
        return "error_phone_invalid"
    if "otp" in d:
        return "error_otp_invalid"
    if "date" in d:
        return "error_date_invalid"
    if "password" in d:
        if "short" in d:
            return "error_password_too_short"
        if "weak" in d:
            return "error_password_weak"
    return "error_validation"


_STATUS_RULES = {
    400: _key_400,
    401: _key_401,
    403: _key_403,
    404: _key_404,
    409: _key_409,
    422: _key_422,
}

_STATUS_KEYS = {
    429: "error_too_many_requests",
    500: "error_server_internal",
    502: "error_server_bad_gateway",
    503: "error_server_unavailable",
    504: "error_server_timeout",
}


def error_key_for(status_code: int, body: Any) -> str:
    """
    Resolve the error key for an HTTP failure.

    Args:
        status_code: HTTP status of the response.
        body:        Decoded JSON body, or ``None``.

    Returns:
        A stable ``error_*`` key; never raises.
    """
    structured = _structured_key(body)
    if structured:
        return structured

    rule = _STATUS_RULES.get(status_code)
    if rule is not None:
        return rule(extract_detail(body))
    return _STATUS_KEYS.get(status_code, "error_unknown")


def error_from_response(response: requests.Response) -> ApiError:
    """Build an :class:`ApiError` from an unsuccessful HTTP response."""
    body = _body_of(response)
    key = error_key_for(response.status_code, body)
    detail = extract_detail(body) or None
    logger.warning(
        "%s %s failed with HTTP %d -> %s",
        response.request.method if response.request is not None else "?",
        response.url,
        response.status_code,
        key,
    )
    return ApiError(
        key,
        status_code=response.status_code,
        detail=detail,
        validation_errors=extract_validation_errors(body),
    )
