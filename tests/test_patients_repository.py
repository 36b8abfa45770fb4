import pytest

from core import constants as C
from core.errors import ApiError, RepositoryError, ValidationError
from tests.factories import patient_json


def test_fresh_cache_serves_without_network(signed_in, http, clock):
    http.add("GET", C.PATIENTS, [patient_json("PT-001", 1), patient_json("PT-002", 2)])

    first = signed_in.patients.get_patients()
    clock.advance(minutes=30)
    second = signed_in.patients.get_patients()

    assert [p.patient_code for p in second] == ["PT-001", "PT-002"]
    assert first == second
    assert http.count("GET", C.PATIENTS) == 1


def test_expired_cache_refetches_and_replaces(signed_in, http, clock):
    http.add("GET", C.PATIENTS, [patient_json("PT-001", 1), patient_json("PT-002", 2)])
    http.add("GET", C.PATIENTS, [patient_json("PT-003", 3)])

    signed_in.patients.get_patients()
    clock.advance(minutes=61)
    patients = signed_in.patients.get_patients()

    assert [p.patient_code for p in patients] == ["PT-003"]
    assert signed_in.patients.cached_count() == 1
    assert http.count("GET", C.PATIENTS) == 2


def test_force_refresh_bypasses_fresh_cache(signed_in, http):
    http.add("GET", C.PATIENTS, [patient_json()])
    signed_in.patients.get_patients()
    signed_in.patients.get_patients(force_refresh=True)
    assert http.count("GET", C.PATIENTS) == 2


def test_backend_failure_serves_stale_cache(signed_in, http, clock):
    http.add("GET", C.PATIENTS, [patient_json()])
    http.add("GET", C.PATIENTS, {"detail": "boom"}, status=500)

    signed_in.patients.get_patients()
    clock.advance(hours=5)
    patients = signed_in.patients.get_patients()

    assert [p.patient_code for p in patients] == ["PT-001"]


def test_backend_failure_without_cache_raises(signed_in, http):
    http.add("GET", C.PATIENTS, {"detail": "boom"}, status=500)
    with pytest.raises(ApiError) as info:
        signed_in.patients.get_patients()
    assert info.value.error_key == "error_server_internal"


def test_malformed_payload_is_wrapped(signed_in, http):
    http.add("GET", C.PATIENTS, [{"unexpected": True}])
    with pytest.raises(RepositoryError, match="Failed to get patients"):
        signed_in.patients.get_patients()


@pytest.mark.parametrize("code", ["ab", "x" * 51])
def test_create_rejects_code_length_before_network(signed_in, http, code):
    with pytest.raises(ValidationError) as info:
        signed_in.patients.create_patient(code, "Siti Rahma", "Female", "1970-05-12")
    assert info.value.field == "patient_code"
    assert http.calls == []


def test_create_accepts_boundary_lengths(signed_in, http):
    codes = ("abc", "y" * 50)
    for code in codes:
        http.add("POST", C.PATIENTS, {"message": "ok", "data": patient_json(code)})
    for code in codes:
        patient = signed_in.patients.create_patient(code, "Siti Rahma", "Female", "1970-05-12")
        assert patient.patient_code == code


def test_create_upserts_into_cache(signed_in, http):
    http.add("POST", C.PATIENTS, patient_json("PT-009", 9))
    signed_in.patients.create_patient("PT-009", "Siti Rahma", "Female", "1970-05-12")

    sent = http.calls[-1]["json"]
    assert sent == {
        "patient_code": "PT-009",
        "name": "Siti Rahma",
        "gender": "Female",
        "date_of_birth": "1970-05-12",
    }
    assert signed_in.patients.cache.read("PT-009").id == 9


def test_get_by_code_prefers_cache(signed_in, http):
    http.add("GET", C.patient_by_code("PT-001"), patient_json())
    signed_in.patients.get_patient_by_code("PT-001")
    signed_in.patients.get_patient_by_code("PT-001")
    assert http.count("GET", C.patient_by_code("PT-001")) == 1


def test_update_sends_only_given_fields(signed_in, http):
    http.add("PUT", C.patient_by_code("PT-001"), patient_json(name="Siti R."))
    patient = signed_in.patients.update_patient("PT-001", name="Siti R.")
    assert http.calls[-1]["json"] == {"name": "Siti R."}
    assert patient.name == "Siti R."
    assert signed_in.patients.cache.read("PT-001").name == "Siti R."


def test_update_with_nothing_is_rejected(signed_in, http):
    with pytest.raises(ValidationError):
        signed_in.patients.update_patient("PT-001")
    assert http.calls == []


def test_delete_evicts_from_cache(signed_in, http):
    http.add("GET", C.PATIENTS, [patient_json("PT-001", 1), patient_json("PT-002", 2)])
    http.add("DELETE", C.patient_by_code("PT-001"), {"message": "deleted"})

    signed_in.patients.get_patients()
    signed_in.patients.delete_patient("PT-001")

    assert [p.patient_code for p in signed_in.patients.get_patients()] == ["PT-002"]


def test_search_cached_matches_name_or_code(signed_in, http):
    http.add("GET", C.PATIENTS, [patient_json("PT-001", 1), patient_json("ZZ-777", 2, name="Budi")])
    signed_in.patients.get_patients()
    assert [p.patient_code for p in signed_in.patients.search_cached("budi")] == ["ZZ-777"]
    assert len(signed_in.patients.search_cached("")) == 2


def test_created_patient_does_not_mark_list_fresh(signed_in, http):
    http.add("POST", C.PATIENTS, patient_json("PT-009", 9))
    http.add("GET", C.PATIENTS, [patient_json("PT-001", 1), patient_json("PT-002", 2), patient_json("PT-009", 9)])

    signed_in.patients.create_patient("PT-009", "Siti Rahma", "Female", "1970-05-12")
    assert signed_in.patients.is_cache_expired()

    patients = signed_in.patients.get_patients()

    assert [p.patient_code for p in patients] == ["PT-001", "PT-002", "PT-009"]
    assert http.count("GET", C.PATIENTS) == 1


def test_patient_fetched_by_code_does_not_mark_list_fresh(signed_in, http):
    http.add("GET", C.patient_by_code("PT-002"), patient_json("PT-002", 2))
    http.add("GET", C.PATIENTS, [patient_json("PT-001", 1), patient_json("PT-002", 2)])

    signed_in.patients.get_patient_by_code("PT-002")
    patients = signed_in.patients.get_patients()

    assert len(patients) == 2
    assert http.count("GET", C.PATIENTS) == 1


def test_update_keeps_list_sync_time(signed_in, http, clock):
    http.add("GET", C.PATIENTS, [patient_json()])
    http.add("PUT", C.patient_by_code("PT-001"), patient_json(name="Siti R."))

    signed_in.patients.get_patients()
    synced = signed_in.patients.cache.last_sync()
    clock.advance(minutes=61)
    signed_in.patients.update_patient("PT-001", name="Siti R.")

    assert signed_in.patients.cache.last_sync() == synced
    assert signed_in.patients.is_cache_expired()
