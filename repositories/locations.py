"""
repositories/locations.py

Administrative-region lookups. Provinces rarely change and are cached for
thirty days; lower levels depend on the selection and are fetched live.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from core import constants as C
from core.config import Settings
from repositories.base import read_through
from services.locations import LocationService
from storage.cache import Clock, TypedCache, utc_now
from storage.db import LocalStore
from storage.models import Location

logger = logging.getLogger(__name__)


class LocationRepository:
    def __init__(
        self,
        service: LocationService,
        store: LocalStore,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self._service = service
        self.province_cache: TypedCache[Location] = TypedCache(
            store,
            C.BOX_PROVINCES,
            ttl=timedelta(seconds=settings.provinces_ttl_seconds),
            key_of=lambda loc: loc.code,
            model=Location,
            clock=clock,
        )

    def get_provinces(self, force_refresh: bool = False) -> list[Location]:
        return read_through(
            self.province_cache,
            self._service.provinces,
            what="provinces",
            force_refresh=force_refresh,
        )

    def get_regencies(self, province_code: str) -> list[Location]:
        return self._service.regencies(province_code)

    def get_districts(self, regency_code: str) -> list[Location]:
        return self._service.districts(regency_code)

    def get_villages(self, district_code: str) -> list[Location]:
        return self._service.villages(district_code)

    def clear_cache(self) -> None:
        self.province_cache.clear()
