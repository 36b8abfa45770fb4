"""
Shared fixtures: a scripted stand-in for ``requests.Session``, a
controllable clock and a fully wired client on a temp SQLite file.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from cryptography.fernet import Fernet
from PIL import Image

from app.main import build_client
from core.config import Settings
from storage.models import AuthTokens, User
from tests.factories import API_BASE, LOCATION_BASE, FakeClock, FakeSession, user_json


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_base_url=API_BASE,
        location_base_url=LOCATION_BASE,
        data_dir=tmp_path / "data",
        data_key=Fernet.generate_key().decode(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def http() -> FakeSession:
    return FakeSession(API_BASE)


@pytest.fixture
def external_http() -> FakeSession:
    return FakeSession(LOCATION_BASE)


@pytest.fixture
def shared() -> list[tuple[Path, str]]:
    return []


@pytest.fixture
def client(settings, http, external_http, clock, shared):
    return build_client(
        settings,
        http=http,
        external_http=external_http,
        clock=clock,
        share=lambda path, subject: shared.append((path, subject)),
    )


@pytest.fixture
def signed_in(client):
    """Client with a stored token pair and cached user."""
    client.session.save_tokens(AuthTokens(access_token="access-1", refresh_token="refresh-1"))
    client.session.save_user(User.model_validate(user_json()))
    client.session.set_logged_in(True)
    return client


@pytest.fixture
def fundus_png(tmp_path: Path) -> Path:
    path = tmp_path / "fundus.png"
    Image.new("RGB", (32, 32), (180, 60, 40)).save(path, format="PNG")
    return path


@pytest.fixture
def fundus_tiff(tmp_path: Path) -> Path:
    path = tmp_path / "fundus.tif"
    Image.new("RGB", (32, 32), (180, 60, 40)).save(path, format="TIFF")
    return path
