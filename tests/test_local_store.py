import sqlite3
from datetime import timedelta

from cryptography.fernet import Fernet

from core import constants as C
from storage.cache import TypedCache
from storage.crypto import TokenCipher
from storage.db import LocalStore
from storage.models import AuthTokens, Patient
from tests.factories import detection_json, patient_json, stats_json


def test_tokens_are_encrypted_at_rest(client):
    client.session.save_tokens(AuthTokens(access_token="plain-access", refresh_token="plain-refresh"))

    conn = sqlite3.connect(client.store.db_path)
    raw = [row[0] for row in conn.execute("SELECT encrypted_value FROM secure_kv")]
    conn.close()

    assert len(raw) == 2
    assert all("plain-" not in value for value in raw)
    assert client.session.access_token == "plain-access"


def test_wrong_key_reads_tokens_as_absent(client, settings):
    client.session.save_tokens(AuthTokens(access_token="a", refresh_token="r"))
    other = LocalStore(settings.db_path, TokenCipher(Fernet.generate_key()))
    assert other.get_secret(C.KEY_ACCESS_TOKEN) is None


def test_cipher_without_key_still_works():
    cipher = TokenCipher(None)
    assert cipher.decrypt(cipher.encrypt("hello")) == "hello"


def test_box_keeps_server_order_and_appends_new(client, clock):
    cache = TypedCache(
        client.store, "scratch", ttl=timedelta(hours=1),
        key_of=lambda p: p.patient_code, model=Patient, clock=clock,
    )
    cache.replace_all([Patient.model_validate(patient_json(c, i)) for i, c in enumerate(("B", "A", "C"), 1)])
    cache.upsert(Patient.model_validate(patient_json("A", 2, name="Updated")))
    cache.upsert(Patient.model_validate(patient_json("D", 4)))

    assert [p.patient_code for p in cache.read_all()] == ["B", "A", "C", "D"]
    assert cache.read("A").name == "Updated"


def test_undecodable_entries_are_dropped(client, clock):
    cache = TypedCache(
        client.store, "scratch", ttl=timedelta(hours=1),
        key_of=lambda p: p.patient_code, model=Patient, clock=clock,
    )
    cache.replace_all([Patient.model_validate(patient_json())])
    client.store.box_put("scratch", "broken", '{"id": "nope"}', clock())
    assert [p.patient_code for p in cache.read_all()] == ["PT-001"]
    assert cache.read("broken") is None


def test_freshness_follows_clock(client, clock):
    cache = TypedCache(
        client.store, "scratch", ttl=timedelta(minutes=5),
        key_of=lambda p: p.patient_code, model=Patient, clock=clock,
    )
    assert cache.is_expired()
    assert cache.age() is None
    cache.replace_all([])
    assert cache.is_fresh()
    clock.advance(minutes=5)
    assert cache.is_expired()


def test_overview_and_cache_stats(signed_in, http):
    http.add("GET", C.DASHBOARD_STATS, stats_json())
    http.add("GET", C.PATIENTS, [patient_json()])
    http.add("GET", C.DETECTIONS, [detection_json(1), detection_json(2)])

    overview = signed_in.load_overview()

    assert overview.stats.total_patients == 12
    assert len(overview.patients) == 1
    assert len(overview.detections) == 2
    stats = signed_in.cache_stats()
    assert stats[C.BOX_DETECTIONS]["count"] == 2
    assert stats[C.BOX_PATIENTS]["count"] == 1


def test_single_upsert_leaves_sync_time_alone(client, clock):
    cache = TypedCache(
        client.store, "scratch", ttl=timedelta(hours=1),
        key_of=lambda p: p.patient_code, model=Patient, clock=clock,
    )
    cache.upsert(Patient.model_validate(patient_json()))
    assert cache.last_sync() is None
    assert cache.is_expired()
    assert cache.count() == 1

    cache.upsert(Patient.model_validate(patient_json("PT-002", 2)), stamp=True)
    assert cache.last_sync() == clock()


def test_value_cache_put_counts_as_sync(signed_in, clock):
    assert signed_in.session.user_cache.last_sync() == clock()
    assert signed_in.session.user_cache.is_fresh()
