"""
services/detections.py

Endpoint bindings for ``/detections``, including the start/save/cancel
session endpoints.
"""

from __future__ import annotations

from typing import Any

from core import constants as C
from network.api_client import ApiClient
from storage.models import Detection, DetectionFilters, DetectionPreview, MessageResponse


class DetectionService:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def start(self, patient_code: str, side_eye: str, image: tuple) -> DetectionPreview:
        """
        Upload a fundus image and obtain an unsaved prediction.

        The backend answers ``{"session_id": ..., "message": ..., "data": {...}}``;
        the session id is folded into the preview.
        """
        response = self._api.post(
            C.DETECTIONS_START,
            data={"patient_code": patient_code, "side_eye": side_eye},
            files={"image": image},
        )
        body = response.json()
        preview = dict(body.get("data") or {})
        preview["session_id"] = body["session_id"]
        return DetectionPreview.model_validate(preview)

    def save(self, session_id: str) -> MessageResponse:
        response = self._api.post(C.DETECTIONS_SAVE, json={"session_id": session_id})
        return MessageResponse.model_validate(response.json())

    def cancel(self, session_id: str) -> MessageResponse:
        response = self._api.delete(C.detection_cancel(session_id))
        return MessageResponse.model_validate(response.json())

    def list(
        self,
        filters: DetectionFilters | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Detection]:
        params: dict[str, Any] = filters.as_params() if filters else {}
        params.update(skip=skip, limit=limit)
        response = self._api.get(C.DETECTIONS, params=params)
        return [Detection.model_validate(item) for item in response.json()]

    def get(self, detection_id: int) -> Detection:
        return Detection.model_validate(self._api.get(C.detection_by_id(detection_id)).json())

    def delete(self, detection_id: int) -> MessageResponse:
        response = self._api.delete(C.detection_by_id(detection_id))
        return MessageResponse.model_validate(response.json())

    def progress_chart(self, patient_id: int) -> dict[str, Any]:
        return self._api.get(C.patient_progress_chart(patient_id)).json()
