"""
services/patients.py

Endpoint bindings for ``/patients``.
"""

from __future__ import annotations

from typing import Any

from core import constants as C
from network.api_client import ApiClient
from storage.models import MessageResponse, Patient


def _unwrap(body: Any) -> Any:
    """Create responses may be wrapped as ``{"data": {...}}``."""
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body


class PatientService:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def list(self, skip: int = 0, limit: int = 100) -> list[Patient]:
        response = self._api.get(C.PATIENTS, params={"skip": skip, "limit": limit})
        return [Patient.model_validate(item) for item in response.json()]

    def get(self, patient_code: str) -> Patient:
        return Patient.model_validate(self._api.get(C.patient_by_code(patient_code)).json())

    def create(self, patient_code: str, name: str, gender: str, date_of_birth: str) -> Patient:
        response = self._api.post(
            C.PATIENTS,
            json={
                "patient_code": patient_code,
                "name": name,
                "gender": gender,
                "date_of_birth": date_of_birth,
            },
        )
        return Patient.model_validate(_unwrap(response.json()))

    def update(self, patient_code: str, changes: dict[str, Any]) -> Patient:
        """Partial update; only the keys present in *changes* are sent."""
        response = self._api.put(C.patient_by_code(patient_code), json=changes)
        return Patient.model_validate(_unwrap(response.json()))

    def delete(self, patient_code: str) -> MessageResponse:
        response = self._api.delete(C.patient_by_code(patient_code))
        return MessageResponse.model_validate(response.json())
