"""
network/external_client.py

Unauthenticated client for third-party lookups (Indonesian administrative
regions). Uses a short timeout and never touches the token store.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from core.config import Settings
from core.errors import ApiError, error_from_response, error_from_transport

logger = logging.getLogger(__name__)


class ExternalClient:
    def __init__(self, settings: Settings, http: requests.Session | None = None) -> None:
        self.base_url = settings.location_base_url.rstrip("/")
        self._timeout = settings.external_timeout
        self._http = http or requests.Session()

    def get_json(self, path: str) -> Any:
        """
        GET *path* and return the decoded JSON body.

        Raises:
            ApiError: On transport failure, non-2xx status or a non-JSON body.
        """
        try:
            response = self._http.request(
                "GET",
                f"{self.base_url}{path}",
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise error_from_transport(exc) from exc

        logger.debug("GET %s -> %d", path, response.status_code)
        if response.status_code >= 400:
            raise error_from_response(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError("error_unknown", status_code=response.status_code, cause=exc) from exc
