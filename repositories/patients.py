"""
repositories/patients.py

Patient access with a one-hour cache-aside policy keyed by patient code.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from core import constants as C
from core.config import Settings
from core.errors import ApiError, RepositoryError, ValidationError
from core.validators import (
    require,
    validate_date_of_birth,
    validate_gender,
    validate_name,
    validate_patient_code,
)
from repositories.base import read_through
from services.patients import PatientService
from storage.cache import Clock, TypedCache, utc_now
from storage.db import LocalStore
from storage.models import Patient

logger = logging.getLogger(__name__)


def _iso(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else value.strip()


class PatientRepository:
    def __init__(
        self,
        service: PatientService,
        store: LocalStore,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self._service = service
        self._clock = clock
        self.cache: TypedCache[Patient] = TypedCache(
            store,
            C.BOX_PATIENTS,
            ttl=timedelta(seconds=settings.patients_ttl_seconds),
            key_of=lambda p: p.patient_code,
            model=Patient,
            clock=clock,
        )

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_patients(self, force_refresh: bool = False, skip: int = 0, limit: int = 100) -> list[Patient]:
        """
        Return the patient list, served from cache while fresh.

        Args:
            force_refresh: Bypass the freshness window.
            skip:          Pagination offset.
            limit:         Page size.

        Raises:
            ApiError: If the backend fails and nothing is cached.
        """
        return read_through(
            self.cache,
            lambda: self._service.list(skip=skip, limit=limit),
            what="patients",
            force_refresh=force_refresh,
        )

    def get_patient_by_code(self, patient_code: str, force_refresh: bool = False) -> Patient:
        """Cached patient if present, otherwise fetched and upserted."""
        require("patient_code", validate_patient_code(patient_code))
        code = patient_code.strip()

        if not force_refresh:
            cached = self.cache.read(code)
            if cached is not None:
                return cached

        try:
            patient = self._service.get(code)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to get patient: {exc}") from exc

        self.cache.upsert(patient)
        return patient

    def search_cached(self, query: str) -> list[Patient]:
        """Case-insensitive match on name or code over the cached list."""
        needle = query.strip().lower()
        patients = self.cache.read_all()
        if not needle:
            return patients
        return [
            p for p in patients
            if needle in p.name.lower() or needle in p.patient_code.lower()
        ]

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def create_patient(
        self,
        patient_code: str,
        name: str,
        gender: str,
        date_of_birth: date | str,
    ) -> Patient:
        """
        Validate locally, create on the backend, then cache the result.

        Raises:
            ValidationError: Before any network call, for malformed input.
            ApiError:        If the backend rejects the patient.
        """
        require("patient_code", validate_patient_code(patient_code))
        require("name", validate_name(name))
        require("gender", validate_gender(gender))
        require("date_of_birth", validate_date_of_birth(date_of_birth, self._clock().date()))

        try:
            patient = self._service.create(
                patient_code=patient_code.strip(),
                name=name.strip(),
                gender=gender,
                date_of_birth=_iso(date_of_birth),
            )
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to create patient: {exc}") from exc

        self.cache.upsert(patient)
        logger.info("Created patient %s", patient.patient_code)
        return patient

    def update_patient(
        self,
        patient_code: str,
        name: str | None = None,
        gender: str | None = None,
        date_of_birth: date | str | None = None,
    ) -> Patient:
        """Send only the fields that were given; empty strings count as absent."""
        require("patient_code", validate_patient_code(patient_code))
        changes: dict[str, Any] = {}
        if name:
            require("name", validate_name(name))
            changes["name"] = name.strip()
        if gender:
            require("gender", validate_gender(gender))
            changes["gender"] = gender
        if date_of_birth:
            require("date_of_birth", validate_date_of_birth(date_of_birth, self._clock().date()))
            changes["date_of_birth"] = _iso(date_of_birth)
        if not changes:
            raise ValidationError("patient", "Nothing to update")

        try:
            patient = self._service.update(patient_code.strip(), changes)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to update patient: {exc}") from exc

        self.cache.upsert(patient)
        return patient

    def delete_patient(self, patient_code: str) -> None:
        """Delete on the backend (cascades to detections), then evict locally."""
        require("patient_code", validate_patient_code(patient_code))
        code = patient_code.strip()
        try:
            self._service.delete(code)
        except (ApiError, ValidationError):
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to delete patient: {exc}") from exc
        self.cache.remove(code)
        logger.info("Deleted patient %s", code)

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
