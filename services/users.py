"""
services/users.py

Endpoint bindings for ``/users/me``.
"""

from __future__ import annotations

from typing import Any

from core import constants as C
from network.api_client import ApiClient
from storage.models import User


class UserService:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def me(self) -> User:
        return User.model_validate(self._api.get(C.USERS_ME).json())

    def update_me(self, changes: dict[str, Any]) -> User:
        return User.model_validate(self._api.patch(C.USERS_ME, json=changes).json())
