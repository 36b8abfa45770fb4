import pytest

from core import constants as C
from core.errors import ApiError
from tests.factories import stats_json


def test_stats_are_cached_for_five_minutes(signed_in, http, clock):
    http.add("GET", C.DASHBOARD_STATS, stats_json())

    signed_in.dashboard.get_dashboard_stats()
    assert http.count("GET", C.DASHBOARD_STATS) == 1

    clock.advance(minutes=2)
    signed_in.dashboard.get_dashboard_stats()
    assert http.count("GET", C.DASHBOARD_STATS) == 1

    clock.advance(minutes=4)
    signed_in.dashboard.get_dashboard_stats()
    assert http.count("GET", C.DASHBOARD_STATS) == 2


def test_breakdown_percentages(signed_in, http):
    http.add("GET", C.DASHBOARD_STATS, stats_json())
    stats = signed_in.dashboard.get_dashboard_stats()
    assert stats.breakdown.total == 30
    assert stats.breakdown.formatted_percentage(0) == "33.3%"
    assert stats.average_detections_per_patient == pytest.approx(2.5)


def test_empty_breakdown_formats_as_zero(signed_in, http):
    http.add("GET", C.DASHBOARD_STATS, {"total_patients": 0, "total_detections": 0})
    stats = signed_in.dashboard.get_dashboard_stats()
    assert not stats.has_data
    assert stats.breakdown.formatted_percentage(4) == "0%"
    assert stats.average_detections_per_patient == 0.0


def test_failure_serves_stale_stats(signed_in, http, clock):
    http.add("GET", C.DASHBOARD_STATS, stats_json(detections_today=5))
    http.add("GET", C.DASHBOARD_STATS, {"detail": "down"}, status=503)

    signed_in.dashboard.get_dashboard_stats()
    clock.advance(minutes=10)
    stats = signed_in.dashboard.get_dashboard_stats()

    assert stats.detections_today == 5
    assert http.count("GET", C.DASHBOARD_STATS) == 2


def test_failure_without_cache_raises(signed_in, http):
    http.add("GET", C.DASHBOARD_STATS, {"detail": "down"}, status=503)
    with pytest.raises(ApiError) as info:
        signed_in.dashboard.get_dashboard_stats()
    assert info.value.error_key == "error_server_unavailable"


def test_invalidate_forces_next_fetch(signed_in, http):
    http.add("GET", C.DASHBOARD_STATS, stats_json())
    signed_in.dashboard.get_dashboard_stats()
    signed_in.dashboard.invalidate()
    assert signed_in.dashboard.is_cache_expired()
    signed_in.dashboard.get_dashboard_stats()
    assert http.count("GET", C.DASHBOARD_STATS) == 2
