"""
repositories/detections.py

Detection history plus the three-step detection session.

Session protocol
----------------
    session = repo.start_detection(code, "Right", "fundus.tif")   # preview
    repo.save_detection(session)        # persist on the backend
    # or
    repo.cancel_detection(session)      # discard; safe to call twice

A :class:`storage.models.DetectionSession` is closed after save or cancel
and is rejected if reused. Starting a new detection without cancelling the
previous one is allowed; the abandoned server session simply expires.
Use :meth:`DetectionRepository.restart_detection` to retry cleanly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any

from core import constants as C
from core.config import Settings
from core.errors import ApiError, RepositoryError, ValidationError
from core.images import prepare_image
from core.validators import (
    require,
    validate_age_range,
    validate_classification,
    validate_gender,
    validate_patient_code,
    validate_side_eye,
)
from repositories.base import read_through
from services.detections import DetectionService
from storage.cache import Clock, TypedCache, utc_now
from storage.db import LocalStore
from storage.models import Detection, DetectionFilters, DetectionSession

logger = logging.getLogger(__name__)


class DetectionRepository:
    def __init__(
        self,
        service: DetectionService,
        store: LocalStore,
        settings: Settings,
        clock: Clock = utc_now,
        on_saved: list[Callable[[], None]] | None = None,
    ) -> None:
        self._service = service
        self._settings = settings
        self._clock = clock
        # Callables run after a successful save (e.g. dashboard invalidation).
        self._on_saved = list(on_saved or [])
        self.cache: TypedCache[Detection] = TypedCache(
            store,
            C.BOX_DETECTIONS,
            ttl=timedelta(seconds=settings.detections_ttl_seconds),
            key_of=lambda d: str(d.id),
            model=Detection,
            clock=clock,
        )

    # -----------------------------------------------------------------------
    # Session: start / save / cancel
    # -----------------------------------------------------------------------

    def start_detection(self, patient_code: str, side_eye: str, image_path: str | Path) -> DetectionSession:
        """
        Upload a fundus image and open a detection session.

        Args:
            patient_code: Existing patient's code.
            side_eye:     ``"Right"`` or ``"Left"``.
            image_path:   JPEG/PNG/TIFF file, at most ``max_image_bytes``.

        Returns:
            An active :class:`DetectionSession` holding the preview.

        Raises:
            ValidationError: For malformed input or an unreadable image.
            ApiError:        If the backend rejects the upload.
        """
        require("patient_code", validate_patient_code(patient_code))
        require("side_eye", validate_side_eye(side_eye))
        image = prepare_image(image_path, self._settings.max_image_bytes)

        try:
            preview = self._service.start(patient_code.strip(), side_eye, image.as_multipart())
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to start detection: {exc}") from exc

        session = DetectionSession(
            preview=preview,
            started_at=self._clock(),
            ttl_seconds=self._settings.detection_session_ttl_seconds,
        )
        logger.info(
            "Detection session %s started: %s (%s)",
            session.session_id, preview.predicted_label, preview.confidence_percentage,
        )
        return session

    def save_detection(self, session: DetectionSession) -> None:
        """
        Persist the previewed result.

        On failure the session stays active so the caller may retry.

        Raises:
            ApiError: ``error_session_expired`` / ``error_session_not_found``
                locally for closed or stale sessions, or any backend error.
        """
        if not session.is_active:
            raise ApiError.client_error("error_session_not_found", "Session is already closed")
        if session.is_expired(self._clock()):
            raise ApiError.client_error("error_session_expired", "Session is older than its TTL")

        try:
            self._service.save(session.session_id)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to save detection: {exc}") from exc

        session.mark_saved()
        self.cache.clear()
        for callback in self._on_saved:
            callback()
        logger.info("Detection session %s saved", session.session_id)

    def cancel_detection(self, session: DetectionSession | None) -> None:
        """
        Discard a session. No-op for ``None`` or an already closed session.

        The session is marked cancelled whatever the backend answers;
        backend errors are re-raised afterwards.
        """
        if session is None or not session.is_active:
            logger.debug("cancel_detection: no active session")
            return
        try:
            self._service.cancel(session.session_id)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to cancel detection: {exc}") from exc
        finally:
            session.mark_cancelled()
        logger.info("Detection session %s cancelled", session.session_id)

    def restart_detection(
        self,
        session: DetectionSession | None,
        patient_code: str,
        side_eye: str,
        image_path: str | Path,
    ) -> DetectionSession:
        """Cancel *session* (best effort) and start a new one."""
        try:
            self.cancel_detection(session)
        except (ApiError, RepositoryError) as exc:
            logger.warning("Ignoring cancel failure before restart: %s", exc)
        return self.start_detection(patient_code, side_eye, image_path)

    # -----------------------------------------------------------------------
    # History
    # -----------------------------------------------------------------------

    def get_detections(
        self,
        filters: DetectionFilters | None = None,
        force_refresh: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Detection]:
        """
        Return detection history.

        Unfiltered requests use the one-hour cache; filtered requests always
        go to the backend and never touch the cache.
        """
        if filters is not None and not filters.is_empty:
            require("classification", validate_classification(filters.classification))
            require("age", validate_age_range(filters.age_min, filters.age_max))
            if filters.gender is not None:
                require("gender", validate_gender(filters.gender))
            try:
                return self._service.list(filters, skip=skip, limit=limit)
            except (ApiError, ValidationError):
                raise
            except Exception as exc:
                raise RepositoryError(f"Failed to get detections: {exc}") from exc

        return read_through(
            self.cache,
            lambda: self._service.list(None, skip=skip, limit=limit),
            what="detections",
            force_refresh=force_refresh,
        )

    def get_patient_detections(self, patient_code: str) -> list[Detection]:
        require("patient_code", validate_patient_code(patient_code))
        return self.get_detections(DetectionFilters(patient_code=patient_code.strip()))

    def get_detection_by_id(self, detection_id: int, force_refresh: bool = False) -> Detection:
        if not force_refresh:
            cached = self.cache.read(str(detection_id))
            if cached is not None:
                return cached
        try:
            detection = self._service.get(detection_id)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to get detection: {exc}") from exc
        self.cache.upsert(detection)
        return detection

    def delete_detection(self, detection_id: int) -> None:
        try:
            self._service.delete(detection_id)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to delete detection: {exc}") from exc
        self.cache.remove(str(detection_id))
        logger.info("Deleted detection %d", detection_id)

    def get_patient_progress_chart(self, patient_id: int) -> dict[str, Any]:
        """Live severity timeline for one patient; never cached."""
        try:
            return self._service.progress_chart(patient_id)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to get progress chart: {exc}") from exc

    # -----------------------------------------------------------------------
    # Cache maintenance
    # -----------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()

    def is_cache_expired(self) -> bool:
        return self.cache.is_expired()

    def cached_count(self) -> int:
        return self.cache.count()

    def cache_age(self) -> timedelta | None:
        return self.cache.age()
