"""
services/locations.py

Indonesian administrative regions from the public location API.

The API answers either a bare JSON list or a ``{"data": [...]}`` envelope
depending on the level; both are accepted.
"""

from __future__ import annotations

import logging
from typing import Any

from core import constants as C
from network.external_client import ExternalClient
from storage.models import Location

logger = logging.getLogger(__name__)


def parse_locations(body: Any) -> list[Location]:
    if isinstance(body, dict):
        body = body.get("data", [])
    if not isinstance(body, list):
        logger.warning("Unexpected location payload type: %s", type(body).__name__)
        return []
    return [Location(code=str(item["code"]), name=str(item["name"])) for item in body]


class LocationService:
    def __init__(self, client: ExternalClient) -> None:
        self._client = client

    def provinces(self) -> list[Location]:
        return parse_locations(self._client.get_json(C.PROVINCES))

    def regencies(self, province_code: str) -> list[Location]:
        return parse_locations(self._client.get_json(C.regencies(province_code)))

    def districts(self, regency_code: str) -> list[Location]:
        return parse_locations(self._client.get_json(C.districts(regency_code)))

    def villages(self, district_code: str) -> list[Location]:
        return parse_locations(self._client.get_json(C.villages(district_code)))
