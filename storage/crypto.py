"""
storage/crypto.py

Fernet encryption for secrets held in the local store (access and refresh
tokens).

Key lifecycle
-------------
The key comes from ``Settings.data_key``, which is populated from the
APP_DATA_KEY environment variable. It must be a URL-safe base64-encoded
32-byte key as produced by ``Fernet.generate_key()``.

If no key is configured, a fresh key is generated for the lifetime of the
:class:`TokenCipher` instance (suitable for local demo / testing). A warning
is emitted because stored tokens will not survive a process restart; the
user simply has to sign in again.

Public API
----------
TokenCipher(key).encrypt(text) -> str
TokenCipher(key).decrypt(token) -> str | None
"""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


def build_fernet(raw_key: str | bytes | None) -> Fernet:
    """
    Return a Fernet instance for *raw_key*.

    If *raw_key* is empty, generates a one-time in-memory key and logs a
    warning.

    Raises:
        ValueError: If *raw_key* is not a valid Fernet key.
    """
    if raw_key:
        key = raw_key.encode() if isinstance(raw_key, str) else raw_key
        logger.debug("Fernet key loaded from configuration.")
    else:
        key = Fernet.generate_key()
        logger.warning(
            "APP_DATA_KEY environment variable is not set. "
            "A temporary in-memory Fernet key has been generated. "
            "Stored tokens will NOT be readable after process restart. "
            "Set APP_DATA_KEY to a stable key for persistent sessions."
        )
    return Fernet(key)


class TokenCipher:
    """Encrypts short UTF-8 secrets for TEXT storage in SQLite."""

    def __init__(self, raw_key: str | bytes | None = None) -> None:
        self._fernet = build_fernet(raw_key)

    def encrypt(self, text: str) -> str:
        return self._fernet.encrypt(text.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str | None:
        """
        Decrypt a token produced by :meth:`encrypt`.

        Returns:
            The plaintext, or ``None`` when the token was written with a
            different key or is corrupted. Such values are treated as
            absent so the caller falls back to signing in again.
        """
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.error("Fernet decryption failed: wrong key or corrupted token.")
            return None
