"""
repositories/auth.py

Sign-up, two-step sign-in and session lifecycle.

Sign-in is email + password followed by an emailed OTP. Only the OTP
verification yields tokens; at that point the profile is fetched, cached
and the login flag set.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import TypeVar

from core.errors import ApiError, RepositoryError, ValidationError
from core.images import prepare_image
from core.validators import (
    require,
    validate_date_of_birth,
    validate_email,
    validate_name,
    validate_otp,
    validate_password,
    validate_phone,
)
from services.auth import AuthService
from storage.models import AuthTokens, MessageResponse, User
from storage.session import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthRepository:
    def __init__(self, service: AuthService, session: SessionStore, max_image_bytes: int) -> None:
        self._service = service
        self._session = session
        self._max_image_bytes = max_image_bytes

    # -----------------------------------------------------------------------
    # Sign-up
    # -----------------------------------------------------------------------

    def signup(
        self,
        full_name: str,
        email: str,
        password: str,
        phone_number: str | None = None,
        profession: str | None = None,
        date_of_birth: date | str | None = None,
        province_name: str | None = None,
        city_name: str | None = None,
        district_name: str | None = None,
        village_name: str | None = None,
        detailed_address: str | None = None,
        assignment_location: str | None = None,
        photo_path: str | Path | None = None,
    ) -> MessageResponse:
        """
        Register a clinician account; the backend then emails an OTP.

        Raises:
            ValidationError: For malformed fields, before any network call.
            ApiError:        E.g. ``error_email_already_exists``.
        """
        require("full_name", validate_name(full_name, "Full name"))
        require("email", validate_email(email))
        require("password", validate_password(password))
        require("phone_number", validate_phone(phone_number))
        if date_of_birth:
            require("date_of_birth", validate_date_of_birth(date_of_birth))
            if isinstance(date_of_birth, date):
                date_of_birth = date_of_birth.isoformat()

        photo = None
        if photo_path is not None:
            photo = prepare_image(photo_path, self._max_image_bytes).as_multipart()

        fields = {
            "full_name": full_name.strip(),
            "email": email.strip(),
            "password": password,
            "phone_number": phone_number or None,
            "profession": profession,
            "date_of_birth": date_of_birth or None,
            "province_name": province_name,
            "city_name": city_name,
            "district_name": district_name,
            "village_name": village_name,
            "detailed_address": detailed_address,
            "assignment_location": assignment_location,
        }
        return self._call("sign up", lambda: self._service.signup(fields, photo))

    def verify_signup_otp(self, email: str, otp: str) -> User:
        require("email", validate_email(email))
        require("otp", validate_otp(otp))
        tokens = self._call("verify OTP", lambda: self._service.verify_signup_otp(email.strip(), otp))
        return self._establish_session(tokens)

    def resend_otp(self, email: str) -> MessageResponse:
        require("email", validate_email(email))
        return self._call("resend OTP", lambda: self._service.resend_otp(email.strip()))

    # -----------------------------------------------------------------------
    # Sign-in
    # -----------------------------------------------------------------------

    def login(self, email: str, password: str) -> MessageResponse:
        """Step one of sign-in: credentials check, triggers the OTP email."""
        require("email", validate_email(email))
        if not password:
            raise ValidationError("password", "Password is required")
        return self._call("sign in", lambda: self._service.signin(email.strip(), password))

    def verify_login_otp(self, email: str, otp: str) -> User:
        """Step two of sign-in: exchange the OTP for tokens and load the profile."""
        require("email", validate_email(email))
        require("otp", validate_otp(otp))
        tokens = self._call(
            "verify OTP", lambda: self._service.verify_signin_otp(email.strip(), otp)
        )
        return self._establish_session(tokens)

    def _establish_session(self, tokens: AuthTokens) -> User:
        self._session.save_tokens(tokens)
        user = self._call("load profile", self._service.me)
        self._session.save_user(user)
        self._session.set_logged_in(True)
        logger.info("Signed in as user id=%d", user.id)
        return user

    # -----------------------------------------------------------------------
    # Password recovery
    # -----------------------------------------------------------------------

    def forgot_password(self, email: str) -> MessageResponse:
        require("email", validate_email(email))
        return self._call("request password reset", lambda: self._service.forgot_password(email.strip()))

    def reset_password(self, email: str, otp: str, new_password: str) -> MessageResponse:
        require("email", validate_email(email))
        require("otp", validate_otp(otp))
        require("new_password", validate_password(new_password))
        return self._call(
            "reset password",
            lambda: self._service.reset_password(email.strip(), otp, new_password),
        )

    # -----------------------------------------------------------------------
    # Session lifecycle
    # -----------------------------------------------------------------------

    def is_authenticated(self) -> bool:
        return self._session.is_logged_in and self._session.has_tokens()

    def get_current_user(self) -> User | None:
        return self._session.current_user

    def refresh_user_data(self) -> User:
        user = self._call("load profile", self._service.me)
        self._session.save_user(user)
        return user

    def refresh_access_token(self) -> AuthTokens:
        """
        Manually rotate the token pair.

        Raises:
            ApiError: ``error_not_authenticated`` when no refresh token is
                stored; a rejected refresh clears the session.
        """
        refresh_token = self._session.refresh_token
        if not refresh_token:
            raise ApiError.client_error("error_not_authenticated", "No refresh token stored")
        tokens = self._call("refresh token", lambda: self._service.refresh_token(refresh_token))
        self._session.save_tokens(tokens)
        return tokens

    def logout(self) -> None:
        """Tell the backend (best effort), then always clear local state."""
        try:
            self._service.signout()
        except (ApiError, RepositoryError) as exc:
            logger.warning("Sign-out call failed, clearing local session anyway: %s", exc)
        finally:
            self._session.clear()

    # -----------------------------------------------------------------------
    # Profile photo
    # -----------------------------------------------------------------------

    def update_profile_photo(self, photo_path: str | Path) -> User:
        photo = prepare_image(photo_path, self._max_image_bytes).as_multipart()
        self._call("update profile photo", lambda: self._service.update_profile_photo(photo))
        return self.refresh_user_data()

    def delete_profile_photo(self) -> User:
        self._call("delete profile photo", self._service.delete_profile_photo)
        return self.refresh_user_data()

    # -----------------------------------------------------------------------

    @staticmethod
    def _call(what: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to {what}: {exc}") from exc
