"""
core/classification.py

DR grade mappings and detection statistics.

Grades follow the international clinical DR scale:

    0  No DR
    1  Mild NPDR
    2  Moderate NPDR
    3  Severe NPDR
    4  Proliferative DR

All mappings are total: anything outside 0..4 resolves to ``Unknown`` and a
neutral colour instead of raising.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storage.models import ClassificationBreakdown, Detection

GRADES = (0, 1, 2, 3, 4)

LABELS = {
    0: "No DR",
    1: "Mild NPDR",
    2: "Moderate NPDR",
    3: "Severe NPDR",
    4: "Proliferative DR",
}

SHORT_LABELS = {
    0: "No DR",
    1: "Mild",
    2: "Moderate",
    3: "Severe",
    4: "Proliferative",
}

COLORS = {
    0: "#10B981",
    1: "#F59E0B",
    2: "#D97706",
    3: "#EF4444",
    4: "#DC2626",
}

UNKNOWN_LABEL = "Unknown"
NEUTRAL_COLOR = "#6B7280"


def label_for(classification: int | None) -> str:
    return LABELS.get(classification, UNKNOWN_LABEL)


def short_label_for(classification: int | None) -> str:
    return SHORT_LABELS.get(classification, UNKNOWN_LABEL)


def color_for(classification: int | None) -> str:
    return COLORS.get(classification, NEUTRAL_COLOR)


def risk_level_for(classification: int | None) -> str:
    """Low for grade 0, Medium for 1-2, High for 3-4."""
    if classification == 0:
        return "Low"
    if classification in (1, 2):
        return "Medium"
    if classification in (3, 4):
        return "High"
    return UNKNOWN_LABEL


def severity_level_for(classification: int | None) -> str:
    if classification == 0:
        return "Normal"
    if classification in (1, 2):
        return "Moderate"
    if classification in (3, 4):
        return "Severe"
    return UNKNOWN_LABEL


# ---------------------------------------------------------------------------
# Statistics over detection lists
# ---------------------------------------------------------------------------


def count_by_grade(detections: Iterable["Detection"]) -> dict[int, int]:
    counts = {grade: 0 for grade in GRADES}
    for det in detections:
        if det.classification in counts:
            counts[det.classification] += 1
    return counts


def classification_breakdown(detections: Iterable["Detection"]) -> "ClassificationBreakdown":
    from storage.models import ClassificationBreakdown

    counts = count_by_grade(detections)
    return ClassificationBreakdown(
        no_dr=counts[0],
        mild=counts[1],
        moderate=counts[2],
        severe=counts[3],
        proliferative=counts[4],
    )


def percentage(count: int, total: int) -> float:
    """Share of *count* in *total* as 0-100; 0 when *total* is 0."""
    if total <= 0:
        return 0.0
    return count / total * 100.0


def format_percentage(count: int, total: int) -> str:
    """``"0%"`` for an empty population, otherwise one decimal place."""
    if total <= 0:
        return "0%"
    return f"{percentage(count, total):.1f}%"


def average_confidence(detections: Sequence["Detection"]) -> float:
    if not detections:
        return 0.0
    return sum(d.confidence for d in detections) / len(detections)


def min_confidence(detections: Sequence["Detection"]) -> float:
    return min((d.confidence for d in detections), default=0.0)


def max_confidence(detections: Sequence["Detection"]) -> float:
    return max((d.confidence for d in detections), default=0.0)


def latest_detection(detections: Sequence["Detection"]) -> "Detection | None":
    if not detections:
        return None
    return max(detections, key=lambda d: d.detected_at)


def most_severe(detections: Sequence["Detection"]) -> "Detection | None":
    if not detections:
        return None
    return max(detections, key=lambda d: d.classification)
