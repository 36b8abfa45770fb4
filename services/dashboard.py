"""
services/dashboard.py

Endpoint binding for ``/dashboard/stats``.
"""

from __future__ import annotations

import logging

from core import constants as C
from network.api_client import ApiClient
from storage.models import DashboardStats

logger = logging.getLogger(__name__)


class DashboardService:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def stats(self) -> DashboardStats:
        stats = DashboardStats.model_validate(self._api.get(C.DASHBOARD_STATS).json())
        logger.debug(
            "Dashboard: %d patients, %d detections (%d today)",
            stats.total_patients, stats.total_detections, stats.detections_today,
        )
        return stats
