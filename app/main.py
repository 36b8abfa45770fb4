"""
app/main.py

DR screening client: composition root.

Builds every collaborator explicitly (settings, logging, local store,
HTTP clients, services, repositories, exporter) and returns them as one
:class:`DRClient`. Nothing is a module-level singleton; tests and callers
can inject their own HTTP session, clock or share sink.

    client = build_client()
    client.auth.login("dr@clinic.id", "secret123")
    user = client.auth.verify_login_otp("dr@clinic.id", "123456")
    overview = client.load_overview()
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import requests

from core.config import Settings
from network.api_client import ApiClient
from network.external_client import ExternalClient
from repositories.auth import AuthRepository
from repositories.dashboard import DashboardRepository
from repositories.detections import DetectionRepository
from repositories.locations import LocationRepository
from repositories.patients import PatientRepository
from repositories.users import UserRepository
from services.auth import AuthService
from services.dashboard import DashboardService
from services.detections import DetectionService
from services.locations import LocationService
from services.patients import PatientService
from services.users import UserService
from storage.cache import Clock, utc_now
from storage.crypto import TokenCipher
from storage.db import LocalStore
from storage.export import ReportExporter, ShareSink
from storage.models import DashboardStats, Detection, Patient
from storage.session import SessionStore

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_LOG_FORMAT)


@dataclass
class Overview:
    """Home-screen data loaded in one go."""
    stats: DashboardStats
    patients: list[Patient]
    detections: list[Detection]


@dataclass
class DRClient:
    settings: Settings
    store: LocalStore
    session: SessionStore
    api: ApiClient
    auth: AuthRepository
    users: UserRepository
    patients: PatientRepository
    detections: DetectionRepository
    dashboard: DashboardRepository
    locations: LocationRepository
    exporter: ReportExporter

    def load_overview(self, force_refresh: bool = False) -> Overview:
        """
        Fetch dashboard stats, patients and detections concurrently.

        Each fetch follows its repository's cache policy; the first failure
        is re-raised after all three have finished.
        """
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="overview") as pool:
            stats_f = pool.submit(self.dashboard.get_dashboard_stats, force_refresh)
            patients_f = pool.submit(self.patients.get_patients, force_refresh)
            detections_f = pool.submit(self.detections.get_detections, None, force_refresh)
        return Overview(
            stats=stats_f.result(),
            patients=patients_f.result(),
            detections=detections_f.result(),
        )

    def cache_stats(self) -> dict:
        return self.store.cache_stats()


def build_client(
    settings: Settings | None = None,
    *,
    http: requests.Session | None = None,
    external_http: requests.Session | None = None,
    clock: Clock = utc_now,
    share: ShareSink | None = None,
) -> DRClient:
    """
    Wire the full client.

    Args:
        settings:      Defaults to :meth:`Settings.from_env`.
        http:          Session for the backend (tests inject a fake).
        external_http: Session for the location API.
        clock:         Shared clock for caches and sessions.
        share:         Sink receiving exported report paths.

    Returns:
        A ready :class:`DRClient` with an initialised local store.
    """
    settings = settings or Settings.from_env()

    store = LocalStore(settings.db_path, TokenCipher(settings.data_key))
    store.init_db()
    session = SessionStore(store, clock=clock)

    api = ApiClient(settings, session, http=http)
    external = ExternalClient(settings, http=external_http)

    dashboard = DashboardRepository(DashboardService(api), store, settings, clock=clock)
    detections = DetectionRepository(
        DetectionService(api),
        store,
        settings,
        clock=clock,
        on_saved=[dashboard.invalidate],
    )

    client = DRClient(
        settings=settings,
        store=store,
        session=session,
        api=api,
        auth=AuthRepository(AuthService(api), session, settings.max_image_bytes),
        users=UserRepository(UserService(api), session),
        patients=PatientRepository(PatientService(api), store, settings, clock=clock),
        detections=detections,
        dashboard=dashboard,
        locations=LocationRepository(LocationService(external), store, settings, clock=clock),
        exporter=ReportExporter(share=share, clock=clock),
    )
    logger.info("DR client ready (backend=%s)", settings.api_base_url)
    return client


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    client = build_client(settings)
    if not client.auth.is_authenticated():
        logger.info("No active session; sign in with client.auth.login(...)")
        return
    overview = client.load_overview()
    logger.info(
        "Signed in: %d patients, %d detections, %d today",
        overview.stats.total_patients,
        overview.stats.total_detections,
        overview.stats.detections_today,
    )


if __name__ == "__main__":
    main()
