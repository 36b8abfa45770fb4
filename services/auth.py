"""
services/auth.py

Endpoint bindings for ``/auth/*``. No caching or validation here; see
repositories/auth.py.
"""

from __future__ import annotations

from typing import Any

from core import constants as C
from network.api_client import ApiClient
from storage.models import AuthTokens, MessageResponse, User


class AuthService:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def signup(self, fields: dict[str, Any], photo: tuple | None = None) -> MessageResponse:
        """Multipart sign-up; *fields* with ``None`` values are omitted."""
        form = {k: str(v) for k, v in fields.items() if v is not None}
        files = {"photo": photo} if photo is not None else None
        # requests only emits multipart when files are present
        if files is None:
            files = {k: (None, v) for k, v in form.items()}
            form = None
        response = self._api.post(C.SIGNUP, data=form, files=files)
        return MessageResponse.model_validate(response.json())

    def verify_signup_otp(self, email: str, otp: str) -> AuthTokens:
        response = self._api.post(C.VERIFY_OTP, json={"email": email, "otp": otp})
        return AuthTokens.model_validate(response.json())

    def signin(self, email: str, password: str) -> MessageResponse:
        response = self._api.post(C.SIGNIN, json={"email": email, "password": password})
        return MessageResponse.model_validate(response.json())

    def verify_signin_otp(self, email: str, otp: str) -> AuthTokens:
        response = self._api.post(C.SIGNIN_VERIFY_OTP, json={"email": email, "otp": otp})
        return AuthTokens.model_validate(response.json())

    def resend_otp(self, email: str) -> MessageResponse:
        response = self._api.post(C.RESEND_OTP, json={"email": email})
        return MessageResponse.model_validate(response.json())

    def refresh_token(self, refresh_token: str) -> AuthTokens:
        response = self._api.post(C.REFRESH_TOKEN, json={"refresh_token": refresh_token})
        return AuthTokens.model_validate(response.json())

    def forgot_password(self, email: str) -> MessageResponse:
        response = self._api.post(C.FORGOT_PASSWORD, json={"email": email})
        return MessageResponse.model_validate(response.json())

    def reset_password(self, email: str, otp: str, new_password: str) -> MessageResponse:
        response = self._api.post(
            C.RESET_PASSWORD,
            json={"email": email, "otp": otp, "new_password": new_password},
        )
        return MessageResponse.model_validate(response.json())

    def me(self) -> User:
        return User.model_validate(self._api.get(C.AUTH_ME).json())

    def update_profile_photo(self, photo: tuple) -> MessageResponse:
        response = self._api.post(C.UPDATE_PROFILE_PHOTO, files={"photo": photo})
        return MessageResponse.model_validate(response.json())

    def delete_profile_photo(self) -> MessageResponse:
        response = self._api.delete(C.DELETE_PROFILE_PHOTO)
        return MessageResponse.model_validate(response.json())

    def signout(self) -> MessageResponse:
        return MessageResponse.model_validate(self._api.post(C.SIGNOUT).json())
