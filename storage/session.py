"""
storage/session.py

Authentication state kept on the device: the encrypted token pair, the
login flag and the cached current user.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from core import constants as C
from storage.cache import Clock, ValueCache, utc_now
from storage.db import LocalStore
from storage.models import AuthTokens, User

logger = logging.getLogger(__name__)


def mask_token(token: str | None) -> str:
    return f"{token[:8]}..." if token else "<none>"


class SessionStore:
    def __init__(self, store: LocalStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        # The current user never expires locally; it is replaced on sign-in
        # or on an explicit profile refresh.
        self.user_cache: ValueCache[User] = ValueCache(
            store, C.BOX_USER, ttl=timedelta.max, model=User, clock=clock
        )

    # -----------------------------------------------------------------------
    # Tokens
    # -----------------------------------------------------------------------

    @property
    def access_token(self) -> str | None:
        return self._store.get_secret(C.KEY_ACCESS_TOKEN)

    @property
    def refresh_token(self) -> str | None:
        return self._store.get_secret(C.KEY_REFRESH_TOKEN)

    def save_tokens(self, tokens: AuthTokens) -> None:
        now = self._clock()
        self._store.set_secret(C.KEY_ACCESS_TOKEN, tokens.access_token, now)
        self._store.set_secret(C.KEY_REFRESH_TOKEN, tokens.refresh_token, now)
        logger.debug("Stored token pair (access=%s)", mask_token(tokens.access_token))

    def has_tokens(self) -> bool:
        return self.access_token is not None

    # -----------------------------------------------------------------------
    # Login flag and user
    # -----------------------------------------------------------------------

    @property
    def is_logged_in(self) -> bool:
        return self._store.get_value(C.KEY_IS_LOGGED_IN) == "1"

    def set_logged_in(self, value: bool) -> None:
        self._store.set_value(C.KEY_IS_LOGGED_IN, "1" if value else "0", self._clock())

    @property
    def current_user(self) -> User | None:
        return self.user_cache.get()

    def save_user(self, user: User) -> None:
        self.user_cache.put(user)

    # -----------------------------------------------------------------------
    # Teardown
    # -----------------------------------------------------------------------

    def clear(self) -> None:
        """
        Forget everything tied to the signed-in account.

        Removes both tokens, the login flag, the cached user and every
        cached entity box.
        """
        self._store.clear_all()
        logger.info("Session cleared")
