"""
core/config.py

Runtime settings for the DR screening client.

Values are read from the process environment after loading an optional
``.env`` file with python-dotenv. Every field has a default that matches
the production backend, so ``Settings()`` alone is a usable configuration.

Environment variables
---------------------
DR_API_BASE_URL          Backend base URL (including ``/api/v1``).
DR_LOCATION_BASE_URL     Indonesian administrative-region lookup API.
DR_CONNECT_TIMEOUT       Seconds, backend connect timeout.
DR_READ_TIMEOUT          Seconds, backend read timeout (image analysis is slow).
DR_EXTERNAL_TIMEOUT      Seconds, timeout for the location API.
DR_DATA_DIR              Directory for the local SQLite cache.
APP_DATA_KEY             Fernet key for the encrypted token store.
DR_*_TTL_SECONDS         Cache freshness windows.
DR_MAX_IMAGE_BYTES       Upload size limit for fundus images.
DR_LOG_LEVEL             Root logging level.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

_PROJECT_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_API_BASE_URL = "https://dr-detection-api-165772118694.asia-southeast2.run.app/api/v1"
DEFAULT_LOCATION_BASE_URL = "https://wilayah.id/api"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


class Settings(BaseModel):
    """Immutable client configuration."""

    model_config = {"frozen": True}

    api_base_url: str = DEFAULT_API_BASE_URL
    location_base_url: str = DEFAULT_LOCATION_BASE_URL

    connect_timeout: float = Field(default=600.0, gt=0)
    read_timeout: float = Field(default=600.0, gt=0)
    external_timeout: float = Field(default=10.0, gt=0)

    data_dir: Path = _PROJECT_ROOT / "data"
    data_key: str | None = Field(default=None, repr=False)

    patients_ttl_seconds: int = 60 * 60
    detections_ttl_seconds: int = 60 * 60
    dashboard_ttl_seconds: int = 5 * 60
    provinces_ttl_seconds: int = 30 * 24 * 60 * 60
    detection_session_ttl_seconds: int = 15 * 60

    max_image_bytes: int = 5 * 1024 * 1024
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "dr_client.db"

    @classmethod
    def from_env(cls, dotenv_path: str | Path | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            dotenv_path: Optional explicit ``.env`` file. When omitted,
                python-dotenv searches upward from the working directory.

        Returns:
            A populated :class:`Settings` instance.
        """
        load_dotenv(dotenv_path)

        defaults = cls()
        return cls(
            api_base_url=os.environ.get("DR_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            location_base_url=os.environ.get(
                "DR_LOCATION_BASE_URL", defaults.location_base_url
            ).rstrip("/"),
            connect_timeout=_env_float("DR_CONNECT_TIMEOUT", defaults.connect_timeout),
            read_timeout=_env_float("DR_READ_TIMEOUT", defaults.read_timeout),
            external_timeout=_env_float("DR_EXTERNAL_TIMEOUT", defaults.external_timeout),
            data_dir=Path(os.environ.get("DR_DATA_DIR", str(defaults.data_dir))),
            data_key=os.environ.get("APP_DATA_KEY") or None,
            patients_ttl_seconds=_env_int("DR_PATIENTS_TTL_SECONDS", defaults.patients_ttl_seconds),
            detections_ttl_seconds=_env_int(
                "DR_DETECTIONS_TTL_SECONDS", defaults.detections_ttl_seconds
            ),
            dashboard_ttl_seconds=_env_int(
                "DR_DASHBOARD_TTL_SECONDS", defaults.dashboard_ttl_seconds
            ),
            provinces_ttl_seconds=_env_int(
                "DR_PROVINCES_TTL_SECONDS", defaults.provinces_ttl_seconds
            ),
            max_image_bytes=_env_int("DR_MAX_IMAGE_BYTES", defaults.max_image_bytes),
            log_level=os.environ.get("DR_LOG_LEVEL", defaults.log_level).upper(),
        )
