"""
repositories/dashboard.py

Dashboard statistics with a five-minute cache and stale fallback.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from core import constants as C
from core.config import Settings
from core.errors import ApiError, RepositoryError, ValidationError
from services.dashboard import DashboardService
from storage.cache import Clock, ValueCache, utc_now
from storage.db import LocalStore
from storage.models import DashboardStats

logger = logging.getLogger(__name__)


class DashboardRepository:
    def __init__(
        self,
        service: DashboardService,
        store: LocalStore,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self._service = service
        self.cache: ValueCache[DashboardStats] = ValueCache(
            store,
            C.BOX_DASHBOARD,
            ttl=timedelta(seconds=settings.dashboard_ttl_seconds),
            model=DashboardStats,
            clock=clock,
        )

    def get_dashboard_stats(self, force_refresh: bool = False) -> DashboardStats:
        """
        Return dashboard statistics.

        Cached stats younger than the window are returned without a network
        call. When the backend fails, stale stats are preferred over an error.
        """
        if not force_refresh and self.cache.is_fresh():
            cached = self.cache.get()
            if cached is not None:
                return cached

        try:
            stats = self._service.stats()
        except (ApiError, ValidationError) as exc:
            return self._stale_or_raise(exc)
        except Exception as exc:
            stale = self.cache.get()
            if stale is not None:
                logger.warning("Dashboard fetch failed (%s); serving stale stats", exc)
                return stale
            raise RepositoryError(f"Failed to get dashboard stats: {exc}") from exc

        self.cache.put(stats)
        return stats

    def refresh(self) -> DashboardStats:
        return self.get_dashboard_stats(force_refresh=True)

    def _stale_or_raise(self, exc: Exception) -> DashboardStats:
        stale = self.cache.get()
        if stale is None:
            raise exc
        logger.warning("Dashboard fetch failed (%s); serving stale stats", exc)
        return stale

    def invalidate(self) -> None:
        self.cache.clear()

    def is_cache_expired(self) -> bool:
        return self.cache.is_expired()
