import pytest

from core import constants as C
from core.errors import ApiError, ValidationError
from storage.models import DetectionFilters, SessionState
from tests.factories import detection_json, stats_json


def _start_body(session_id="sess-1", classification=2):
    return {
        "session_id": session_id,
        "message": "Prediction ready",
        "data": {
            "patient_code": "PT-001",
            "patient_name": "Siti Rahma",
            "patient_gender": "Female",
            "patient_age": 54,
            "side_eye": "Right",
            "classification": classification,
            "predicted_label": "Moderate NPDR",
            "confidence": 0.82,
            "description": "Microaneurysms and haemorrhages present.",
            "detected_at": "2024-06-15T10:00:00Z",
            "image_url": "https://cdn.test/tmp/sess-1.png",
            "all_probabilities": {"No DR": 0.05, "Moderate NPDR": 0.82, "Mild NPDR": 0.13},
        },
    }


@pytest.fixture
def started(signed_in, http, fundus_png):
    http.add("POST", C.DETECTIONS_START, _start_body())
    return signed_in.detections.start_detection("PT-001", "Right", fundus_png)


def test_start_returns_active_session_with_preview(started, http):
    assert started.session_id == "sess-1"
    assert started.is_active
    assert started.preview.label == "Moderate NPDR"
    assert started.preview.sorted_probabilities[0] == ("Moderate NPDR", 0.82)

    call = http.calls[-1]
    assert call["data"] == {"patient_code": "PT-001", "side_eye": "Right"}
    filename, _stream, mime = call["files"]["image"]
    assert (filename, mime) == ("fundus.png", "image/png")


def test_start_converts_tiff_to_png(signed_in, http, fundus_tiff):
    http.add("POST", C.DETECTIONS_START, _start_body())
    signed_in.detections.start_detection("PT-001", "Left", fundus_tiff)
    filename, stream, mime = http.calls[-1]["files"]["image"]
    assert (filename, mime) == ("fundus.png", "image/png")
    assert stream.getvalue().startswith(b"\x89PNG")


def test_start_rejects_bad_input_before_network(signed_in, http, fundus_png, tmp_path):
    with pytest.raises(ValidationError):
        signed_in.detections.start_detection("PT-001", "Both", fundus_png)
    with pytest.raises(ValidationError):
        signed_in.detections.start_detection("PT-001", "Right", tmp_path / "missing.png")
    big = tmp_path / "big.png"
    big.write_bytes(b"\x00" * (signed_in.settings.max_image_bytes + 1))
    with pytest.raises(ValidationError):
        signed_in.detections.start_detection("PT-001", "Right", big)
    assert http.calls == []


def test_save_closes_session_and_invalidates_caches(started, signed_in, http):
    http.add("GET", C.DETECTIONS, [detection_json(1)])
    http.add("GET", C.DASHBOARD_STATS, stats_json())
    http.add("POST", C.DETECTIONS_SAVE, {"message": "saved"})
    signed_in.detections.get_detections()
    signed_in.dashboard.get_dashboard_stats()

    signed_in.detections.save_detection(started)

    assert started.state == SessionState.saved
    assert http.calls[-1]["json"] == {"session_id": "sess-1"}
    assert signed_in.detections.cached_count() == 0
    assert signed_in.dashboard.is_cache_expired()


def test_save_failure_keeps_session_active(started, signed_in, http):
    http.add("POST", C.DETECTIONS_SAVE, {"detail": "boom"}, status=500)
    with pytest.raises(ApiError):
        signed_in.detections.save_detection(started)
    assert started.is_active


def test_closed_session_cannot_be_saved_again(started, signed_in, http):
    http.add("POST", C.DETECTIONS_SAVE, {"message": "saved"})
    signed_in.detections.save_detection(started)
    with pytest.raises(ApiError) as info:
        signed_in.detections.save_detection(started)
    assert info.value.error_key == "error_session_not_found"
    assert http.count("POST", C.DETECTIONS_SAVE) == 1


def test_expired_session_is_rejected_locally(started, signed_in, http, clock):
    clock.advance(minutes=16)
    with pytest.raises(ApiError) as info:
        signed_in.detections.save_detection(started)
    assert info.value.error_key == "error_session_expired"
    assert http.count("POST", C.DETECTIONS_SAVE) == 0


def test_cancel_twice_is_safe(started, signed_in, http):
    http.add("DELETE", C.detection_cancel("sess-1"), {"message": "cancelled"})
    signed_in.detections.cancel_detection(started)
    signed_in.detections.cancel_detection(started)
    assert started.state == SessionState.cancelled
    assert http.count("DELETE", C.detection_cancel("sess-1")) == 1


def test_cancel_without_session_is_noop(signed_in, http):
    signed_in.detections.cancel_detection(None)
    assert http.calls == []


def test_cancel_error_still_closes_session(started, signed_in, http):
    http.add("DELETE", C.detection_cancel("sess-1"), {"detail": "Session not found"}, status=404)
    with pytest.raises(ApiError) as info:
        signed_in.detections.cancel_detection(started)
    assert info.value.error_key == "error_session_not_found"
    assert not started.is_active
    signed_in.detections.cancel_detection(started)


def test_restart_cancels_then_starts(started, signed_in, http, fundus_png):
    http.add("DELETE", C.detection_cancel("sess-1"), {"detail": "gone"}, status=404)
    http.add("POST", C.DETECTIONS_START, _start_body("sess-2"))
    fresh = signed_in.detections.restart_detection(started, "PT-001", "Right", fundus_png)
    assert not started.is_active
    assert fresh.session_id == "sess-2"


def test_filtered_history_bypasses_cache(signed_in, http):
    http.add("GET", C.DETECTIONS, [detection_json(1, 3)])
    filters = DetectionFilters(classification=3, gender="Female")

    signed_in.detections.get_detections(filters)
    signed_in.detections.get_detections(filters)

    assert http.count("GET", C.DETECTIONS) == 2
    assert signed_in.detections.cached_count() == 0
    params = http.calls[-1]["params"]
    assert params == {"classification": 3, "gender": "Female", "skip": 0, "limit": 100}


def test_unfiltered_history_is_cached(signed_in, http):
    http.add("GET", C.DETECTIONS, [detection_json(1), detection_json(2)])
    signed_in.detections.get_detections()
    signed_in.detections.get_detections(DetectionFilters())
    assert http.count("GET", C.DETECTIONS) == 1


def test_detection_by_id_and_delete(signed_in, http):
    http.add("GET", C.detection_by_id(5), detection_json(5))
    http.add("DELETE", C.detection_by_id(5), {"message": "deleted"})

    assert signed_in.detections.get_detection_by_id(5).id == 5
    assert signed_in.detections.get_detection_by_id(5).id == 5
    signed_in.detections.delete_detection(5)

    assert http.count("GET", C.detection_by_id(5)) == 1
    assert signed_in.detections.cache.read("5") is None


def test_progress_chart_is_passed_through(signed_in, http):
    chart = {"patient_id": 1, "points": [{"date": "2024-06-01", "classification": 1}]}
    http.add("GET", C.patient_progress_chart(1), chart)
    assert signed_in.detections.get_patient_progress_chart(1) == chart


def test_detection_by_id_after_save_does_not_mark_list_fresh(started, signed_in, http):
    http.add("POST", C.DETECTIONS_SAVE, {"message": "saved"})
    http.add("GET", C.detection_by_id(5), detection_json(5))
    http.add("GET", C.DETECTIONS, [detection_json(i) for i in range(1, 6)])

    signed_in.detections.save_detection(started)
    signed_in.detections.get_detection_by_id(5)
    history = signed_in.detections.get_detections()

    assert [d.id for d in history] == [1, 2, 3, 4, 5]
    assert http.count("GET", C.DETECTIONS) == 1
