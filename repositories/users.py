"""
repositories/users.py

Profile of the signed-in clinician.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from core.errors import ApiError, RepositoryError, ValidationError
from core.validators import (
    require,
    validate_date_of_birth,
    validate_name,
    validate_phone,
    validate_required,
)
from services.users import UserService
from storage.models import User
from storage.session import SessionStore

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "full_name",
    "phone_number",
    "profession",
    "date_of_birth",
    "province_name",
    "city_name",
    "district_name",
    "village_name",
    "detailed_address",
    "assignment_location",
)


class UserRepository:
    def __init__(self, service: UserService, session: SessionStore) -> None:
        self._service = service
        self._session = session

    def get_current_user_profile(self) -> User | None:
        """The cached profile, without a network call."""
        return self._session.current_user

    def refresh_user_profile(self) -> User:
        try:
            user = self._service.me()
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to get profile: {exc}") from exc
        self._session.save_user(user)
        return user

    def get_user_profile(self, force_refresh: bool = False) -> User:
        if not force_refresh:
            cached = self._session.current_user
            if cached is not None:
                return cached
        return self.refresh_user_profile()

    def update_user_profile(self, **changes: Any) -> User:
        """
        Partially update the profile.

        Only keyword arguments listed in ``_EDITABLE_FIELDS`` and not ``None``
        are sent.

        Raises:
            ValidationError: For unknown fields, an empty update or bad values.
        """
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], "Field cannot be updated")

        payload = {k: v for k, v in changes.items() if v is not None}
        if not payload:
            raise ValidationError("profile", "Nothing to update")

        if "full_name" in payload:
            require("full_name", validate_name(payload["full_name"], "Full name"))
        if "phone_number" in payload:
            require("phone_number", validate_phone(payload["phone_number"]))
        if "profession" in payload:
            require("profession", validate_required(payload["profession"], "Profession"))
        if "date_of_birth" in payload:
            dob = payload["date_of_birth"]
            require("date_of_birth", validate_date_of_birth(dob))
            payload["date_of_birth"] = dob.isoformat() if isinstance(dob, date) else dob

        try:
            user = self._service.update_me(payload)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to update profile: {exc}") from exc

        self._session.save_user(user)
        logger.info("Profile updated (%s)", ", ".join(sorted(payload)))
        return user
