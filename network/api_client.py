"""
network/api_client.py

Authenticated HTTP access to the DR detection backend.

Behaviour
---------
- Every request except the public auth endpoints carries
  ``Authorization: Bearer <access_token>`` read from the encrypted store.
- A 401 on a protected endpoint triggers one ``POST /auth/refresh``. On
  success the new token pair is stored and the original request is
  replayed once; otherwise the local session is cleared and the original
  error is raised.
- Refreshes are serialised by a lock. A caller that waited on the lock and
  finds a newer access token than the one it sent replays with that token
  instead of refreshing again.
- ``X-Token-Revoked: true`` on any response clears the local session.
- Non-2xx responses are raised as :class:`core.errors.ApiError`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import requests

from core import constants as C
from core.config import Settings
from core.errors import ApiError, error_from_response, error_from_transport
from storage.models import AuthTokens
from storage.session import SessionStore, mask_token

logger = logging.getLogger(__name__)


def _is_public(path: str) -> bool:
    return path in C.PUBLIC_ENDPOINTS


class ApiClient:
    """
    Thin wrapper over :class:`requests.Session` bound to one backend.

    Args:
        settings:      Base URL and timeouts.
        session_store: Source of tokens; cleared on forced sign-out.
        http:          Optional pre-built session (tests inject a fake).
    """

    def __init__(
        self,
        settings: Settings,
        session_store: SessionStore,
        http: requests.Session | None = None,
    ) -> None:
        self.base_url = settings.api_base_url.rstrip("/")
        self._timeout = (settings.connect_timeout, settings.read_timeout)
        self._session_store = session_store
        self._http = http or requests.Session()
        self._http.headers.setdefault("Accept", "application/json")
        self._refresh_lock = threading.Lock()

    # -----------------------------------------------------------------------
    # Public verbs
    # -----------------------------------------------------------------------

    def get(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("DELETE", path, **kwargs)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> requests.Response:
        """
        Send a request, refreshing the access token once on 401.

        Args:
            method: HTTP verb.
            path:   Endpoint path relative to the base URL.
            params: Query parameters.
            json:   JSON body.
            data:   Form fields (used with *files* for multipart uploads).
            files:  Multipart file parts.

        Returns:
            The successful :class:`requests.Response`.

        Raises:
            ApiError: On transport failure or any non-2xx status.
        """
        token = None if _is_public(path) else self._session_store.access_token
        response = self._send(method, path, token, params, json, data, files)

        if response.status_code == 401 and not _is_public(path):
            if path == C.REFRESH_TOKEN:
                logger.warning("Refresh token rejected; clearing session")
                self._session_store.clear()
                raise error_from_response(response)

            new_token = self._refresh_after_401(token)
            if new_token is None:
                raise error_from_response(response)
            logger.debug("Replaying %s %s with refreshed token", method, path)
            response = self._send(method, path, new_token, params, json, data, files)

        if response.status_code >= 400:
            raise error_from_response(response)
        return response

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        params: dict[str, Any] | None,
        json: Any,
        data: dict[str, Any] | None,
        files: dict[str, Any] | None,
    ) -> requests.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if token is None and not _is_public(path):
            logger.debug("No access token available for %s", path)

        # Rewind file parts so a replay uploads the full content again.
        if files:
            for part in files.values():
                stream = part[1] if isinstance(part, tuple) else part
                if hasattr(stream, "seek"):
                    stream.seek(0)

        try:
            response = self._http.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                data=data,
                files=files,
                headers=headers,
                timeout=self._timeout,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            raise error_from_transport(exc) from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.headers.get("X-Token-Revoked", "").lower() == "true":
            logger.warning("Backend reports token revoked; clearing session")
            self._session_store.clear()
        return response

    def _refresh_after_401(self, sent_token: str | None) -> str | None:
        """
        Obtain a usable access token after a 401.

        Returns:
            The token to replay with, or ``None`` when the session had to be
            cleared.
        """
        with self._refresh_lock:
            current = self._session_store.access_token
            if current is not None and current != sent_token:
                # Another thread refreshed while this one waited.
                return current

            refresh_token = self._session_store.refresh_token
            if not refresh_token:
                logger.warning("No refresh token stored; clearing session")
                self._session_store.clear()
                return None

            try:
                tokens = self._refresh(refresh_token)
            except ApiError as exc:
                logger.warning("Token refresh failed (%s); clearing session", exc)
                self._session_store.clear()
                return None

            self._session_store.save_tokens(tokens)
            logger.info("Access token refreshed (%s)", mask_token(tokens.access_token))
            return tokens.access_token

    def _refresh(self, refresh_token: str) -> AuthTokens:
        try:
            response = self._http.post(
                f"{self.base_url}{C.REFRESH_TOKEN}",
                json={"refresh_token": refresh_token},
                timeout=self._timeout,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            raise error_from_transport(exc) from exc
        if response.status_code != 200:
            raise error_from_response(response)
        try:
            return AuthTokens.model_validate(response.json())
        except ValueError as exc:
            raise ApiError("error_unknown", status_code=response.status_code, cause=exc) from exc
