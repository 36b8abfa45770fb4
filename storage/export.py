"""
storage/export.py

Report export: PDF (reportlab) and Excel (openpyxl) documents built from
already-fetched patients and detections.

Every exporter writes its file into ``output_dir`` (a temp directory by
default), hands the path to the ``share`` sink together with a subject
line, and returns the path. Any failure surfaces as
:class:`core.errors.ExportError`.

Dependencies
------------
- reportlab  (PDF generation, progress chart)
- openpyxl   (Excel workbooks)
"""

from __future__ import annotations

import logging
import re
import tempfile
from collections.abc import Callable, Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.graphics.charts.lineplots import LinePlot
from reportlab.graphics.shapes import Drawing, String
from reportlab.graphics.widgets.markers import makeMarker
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from core import classification as grading
from core.errors import ExportError
from storage.cache import Clock, utc_now
from storage.models import Detection, Patient, User

logger = logging.getLogger(__name__)

ShareSink = Callable[[Path, str], None]

PDF_SUBJECT = "DR Detection Report"
EXCEL_SUBJECT = "DR Detection Data"

_PRIMARY = colors.HexColor("#1a3a5c")
_STRIPE = colors.HexColor("#f0f4f8")
_BORDER = colors.HexColor("#cccccc")
_MUTED = colors.HexColor("#6B7280")

_DATE_FMT = "%d %b %Y"


def log_share(path: Path, subject: str) -> None:
    """Default sink: nothing to hand off to outside an app shell, so just log."""
    logger.info("%s ready: %s", subject, path)


def clean_file_stem(name: str) -> str:
    """Strip punctuation from a file stem, keeping word characters and spaces."""
    cleaned = re.sub(r"[^\w\s]+", "", name).strip()
    return cleaned or "report"


def _fmt_date(value: date | datetime | None) -> str:
    return value.strftime(_DATE_FMT) if value is not None else "-"


def _pct(confidence: float, decimals: int = 1) -> str:
    return f"{confidence * 100:.{decimals}f}%"


def breakdown_rows(detections: Sequence[Detection]) -> list[list[str]]:
    """Header plus one row per grade: label, count, percentage of all detections."""
    breakdown = grading.classification_breakdown(detections)
    return [["Classification", "Count", "Percentage"]] + [
        [grading.label_for(g), str(breakdown.count_for(g)), breakdown.formatted_percentage(g)]
        for g in grading.GRADES
    ]


# ---------------------------------------------------------------------------
# Exporter
# ---------------------------------------------------------------------------


class ReportExporter:
    """
    Builds and hands off reports.

    Args:
        output_dir: Where files are written. Defaults to a ``dr_reports``
                    folder in the system temp directory.
        share:      Called as ``share(path, subject)`` after writing.
        clock:      Source of "now" for file names and the generated-at line.
    """

    def __init__(
        self,
        output_dir: Path | str | None = None,
        share: ShareSink | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path(tempfile.gettempdir()) / "dr_reports"
        self._share = share or log_share
        self._clock = clock

        styles = getSampleStyleSheet()
        self._title = ParagraphStyle(
            "ReportTitle",
            parent=styles["Title"],
            fontSize=16,
            textColor=_PRIMARY,
            spaceAfter=6,
        )
        self._heading = ParagraphStyle(
            "ReportHeading",
            parent=styles["Heading2"],
            fontSize=12,
            textColor=_PRIMARY,
            spaceBefore=12,
            spaceAfter=4,
        )
        self._normal = styles["Normal"]
        self._small = ParagraphStyle("Small", parent=self._normal, fontSize=8, textColor=colors.grey)

    # -----------------------------------------------------------------------
    # Public PDF exports
    # -----------------------------------------------------------------------

    def export_patient_report_pdf(
        self,
        patient: Patient,
        detections: Sequence[Detection],
        operator: User,
    ) -> Path:
        """
        Single-patient report: info, progress chart, history, latest result.

        The progress chart is only drawn when there is more than one
        detection to connect.
        """
        ordered = sorted(detections, key=lambda d: d.detected_at)
        story: list[Any] = [Paragraph("PATIENT REPORT", self._title)]
        story += self._patient_info(patient)

        if len(ordered) > 1:
            story.append(Paragraph("PROGRESS CHART", self._heading))
            story.append(self._progress_chart(ordered))

        story.append(Paragraph("DETECTION HISTORY", self._heading))
        if ordered:
            rows = [["Date", "Eye", "Result", "Conf.", "Risk"]] + [
                [
                    _fmt_date(d.detected_at),
                    d.side_eye,
                    grading.label_for(d.classification),
                    _pct(d.confidence, 0),
                    grading.risk_level_for(d.classification),
                ]
                for d in reversed(ordered)
            ]
            story.append(self._table(rows, [1.2, 0.8, 1.9, 0.8, 0.9]))
            story += self._latest_result(ordered[-1])
        else:
            story.append(Paragraph("No detection history available.", self._normal))

        return self._write_pdf(story, f"patient_report_{patient.patient_code}", operator)

    def export_patients_pdf(self, patients: Sequence[Patient], operator: User) -> Path:
        male = sum(1 for p in patients if p.is_male)
        female = sum(1 for p in patients if p.is_female)
        story: list[Any] = [
            Paragraph("PATIENTS LIST", self._title),
            Paragraph(f"<b>Total Patients: {len(patients)}</b>", self._normal),
            Paragraph(f"Male: {male}  |  Female: {female}", self._normal),
            Spacer(1, 0.2 * inch),
            self._patients_table(patients),
        ]
        return self._write_pdf(story, "all_patients", operator)

    def export_detections_pdf(
        self,
        detections: Sequence[Detection],
        operator: User,
        patient: Patient | None = None,
    ) -> Path:
        title = f"DETECTION HISTORY - {patient.name}" if patient else "ALL DETECTIONS"
        story: list[Any] = [Paragraph(title, self._title)]
        story += self._detection_summary(detections)
        story.append(Spacer(1, 0.2 * inch))
        story.append(self._detections_table(detections))
        stem = f"detections_{patient.patient_code}" if patient else "all_detections"
        return self._write_pdf(story, stem, operator)

    def export_full_report_pdf(
        self,
        patients: Sequence[Patient],
        detections: Sequence[Detection],
        operator: User,
        total_scans: int,
    ) -> Path:
        """
        Clinic-wide report: summary, classification breakdown, gender
        distribution, then the patient and detection listings.
        """
        story: list[Any] = [Paragraph("FULL REPORT", self._title)]

        story.append(Paragraph("SUMMARY", self._heading))
        story.append(self._table(
            [
                ["Total Patients", "Total Detections", "Total Scans"],
                [str(len(patients)), str(len(detections)), str(total_scans)],
            ],
            [2.1, 2.1, 2.1],
        ))

        story.append(Paragraph("CLASSIFICATION BREAKDOWN", self._heading))
        story.append(self._breakdown_table(detections))

        story.append(Paragraph("GENDER DISTRIBUTION", self._heading))
        male = sum(1 for p in patients if p.is_male)
        female = sum(1 for p in patients if p.is_female)
        total = len(patients)
        story.append(self._table(
            [
                ["Gender", "Count", "Percentage"],
                ["Male", str(male), grading.format_percentage(male, total)],
                ["Female", str(female), grading.format_percentage(female, total)],
            ],
            [2.1, 2.1, 2.1],
        ))

        if patients:
            story.append(Paragraph("ALL PATIENTS LIST", self._heading))
            story.append(self._patients_table(patients))
        if detections:
            story.append(Paragraph("ALL DETECTIONS HISTORY", self._heading))
            story.append(self._detections_table(detections))

        return self._write_pdf(story, "full_report", operator)

    # -----------------------------------------------------------------------
    # Public Excel exports
    # -----------------------------------------------------------------------

    def export_patients_excel(self, patients: Sequence[Patient]) -> Path:
        headers = ["No", "Patient Code", "Name", "Gender", "Date of Birth", "Age", "Created At"]
        rows = [
            [
                i,
                p.patient_code,
                p.name,
                p.gender,
                p.date_of_birth.strftime(_DATE_FMT),
                p.computed_age(self._clock().date()),
                _fmt_date(p.created_at),
            ]
            for i, p in enumerate(patients, start=1)
        ]
        try:
            wb = Workbook()
            ws = wb.active
            ws.title = "Patients"
            self._fill_sheet(ws, headers, rows)
        except Exception as exc:
            logger.error("Excel export failed: %s", exc)
            raise ExportError(f"Failed to generate Excel: {exc}") from exc
        return self._write_excel(wb, "patients")

    def export_detections_excel(
        self,
        detections: Sequence[Detection],
        patient: Patient | None = None,
    ) -> Path:
        """Detections sheet plus a Summary sheet with the grade breakdown."""
        headers = [
            "No", "Date", "Patient Code", "Patient Name", "Gender", "Age",
            "Eye", "Classification", "Result", "Confidence", "Risk Level",
        ]
        rows = [
            [
                i,
                d.detected_at.strftime("%d %b %Y, %H:%M"),
                d.patient_code or "-",
                d.patient_name or "-",
                d.patient_gender or "-",
                d.patient_age if d.patient_age is not None else "-",
                d.side_eye,
                d.classification,
                d.predicted_label,
                _pct(d.confidence),
                grading.risk_level_for(d.classification),
            ]
            for i, d in enumerate(detections, start=1)
        ]
        breakdown = grading.classification_breakdown(detections)
        summary_rows = [
            [grading.label_for(g), breakdown.count_for(g), breakdown.formatted_percentage(g)]
            for g in grading.GRADES
        ]
        summary_rows.append(["Total", breakdown.total, "100%" if breakdown.total else "0%"])

        try:
            wb = Workbook()
            ws = wb.active
            ws.title = "Detections"
            self._fill_sheet(ws, headers, rows)
            self._fill_sheet(wb.create_sheet("Summary"), ["Classification", "Count", "Percentage"], summary_rows)
        except Exception as exc:
            logger.error("Excel export failed: %s", exc)
            raise ExportError(f"Failed to generate Excel: {exc}") from exc

        stem = f"detections_{patient.patient_code}" if patient else "all_detections"
        return self._write_excel(wb, stem)

    # -----------------------------------------------------------------------
    # PDF building blocks
    # -----------------------------------------------------------------------

    def _table(self, rows: list[list[str]], widths_inch: list[float]) -> Table:
        table = Table(rows, colWidths=[w * inch for w in widths_inch], repeatRows=1)
        table.setStyle(
            TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), _PRIMARY),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, _STRIPE]),
                ("GRID", (0, 0), (-1, -1), 0.5, _BORDER),
                ("LEFTPADDING", (0, 0), (-1, -1), 5),
                ("RIGHTPADDING", (0, 0), (-1, -1), 5),
                ("TOPPADDING", (0, 0), (-1, -1), 3),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ])
        )
        return table

    def _patient_info(self, patient: Patient) -> list[Any]:
        today = self._clock().date()
        rows = [
            ["Field", "Value"],
            ["Name", patient.name],
            ["Patient ID", patient.patient_code],
            ["Gender", patient.gender],
            ["Age", f"{patient.computed_age(today)} years"],
            ["Date of Birth", _fmt_date(patient.date_of_birth)],
            ["Registered", _fmt_date(patient.created_at)],
        ]
        return [Paragraph("PATIENT INFORMATION", self._heading), self._table(rows, [2.0, 4.3])]

    def _latest_result(self, latest: Detection) -> list[Any]:
        rows = [
            ["Classification", "Confidence", "Risk Level", "Eye Side"],
            [
                grading.label_for(latest.classification),
                _pct(latest.confidence),
                grading.risk_level_for(latest.classification),
                latest.side_eye,
            ],
        ]
        out: list[Any] = [
            Paragraph("LATEST RESULT", self._heading),
            self._table(rows, [1.9, 1.4, 1.4, 1.4]),
        ]
        if latest.description:
            out.append(Spacer(1, 0.05 * inch))
            out.append(Paragraph(latest.description, self._normal))
        return out

    def _progress_chart(self, ordered: Sequence[Detection]) -> Drawing:
        """Severity grade over time, one point per detection."""
        width, height = 6.3 * inch, 2.4 * inch
        drawing = Drawing(width, height)

        plot = LinePlot()
        plot.x, plot.y = 40, 30
        plot.width, plot.height = width - 60, height - 50
        plot.data = [[(i, d.classification) for i, d in enumerate(ordered)]]
        plot.lines[0].strokeColor = _PRIMARY
        plot.lines[0].strokeWidth = 1.5
        plot.lines[0].symbol = makeMarker("FilledCircle")
        plot.xValueAxis.valueMin = 0
        plot.xValueAxis.valueMax = max(len(ordered) - 1, 1)
        plot.xValueAxis.valueStep = 1
        plot.xValueAxis.labelTextFormat = lambda v: (
            ordered[int(v)].detected_at.strftime("%d/%m") if 0 <= int(v) < len(ordered) else ""
        )
        plot.yValueAxis.valueMin = 0
        plot.yValueAxis.valueMax = 4
        plot.yValueAxis.valueStep = 1
        plot.yValueAxis.labelTextFormat = lambda v: grading.short_label_for(int(v))
        plot.yValueAxis.labels.fontSize = 6
        plot.xValueAxis.labels.fontSize = 6
        drawing.add(plot)
        drawing.add(String(40, height - 12, "Severity grade over time", fontSize=8, fillColor=_MUTED))
        return drawing

    def _breakdown_table(self, detections: Sequence[Detection]) -> Table:
        table = self._table(breakdown_rows(detections), [2.6, 1.6, 2.1])
        # Colour swatch per grade in the first column.
        table.setStyle(TableStyle([
            ("TEXTCOLOR", (0, g + 1), (0, g + 1), colors.HexColor(grading.color_for(g)))
            for g in grading.GRADES
        ]))
        return table

    def _detection_summary(self, detections: Sequence[Detection]) -> list[Any]:
        counts = grading.count_by_grade(detections)
        parts = "  |  ".join(f"{grading.short_label_for(g)}: {counts[g]}" for g in grading.GRADES)
        out: list[Any] = [
            Paragraph(f"<b>Total Detections: {len(detections)}</b>", self._normal),
            Paragraph(parts, self._normal),
        ]
        if detections:
            out.append(Paragraph(
                f"Average confidence: {_pct(grading.average_confidence(detections))}",
                self._normal,
            ))
        return out

    def _patients_table(self, patients: Sequence[Patient]) -> Table:
        today = self._clock().date()
        rows = [["No", "Patient Code", "Name", "Gender", "Age", "Registered"]] + [
            [
                str(i),
                p.patient_code,
                p.name,
                p.gender,
                str(p.computed_age(today)),
                _fmt_date(p.created_at),
            ]
            for i, p in enumerate(patients, start=1)
        ]
        return self._table(rows, [0.4, 1.2, 1.9, 0.8, 0.6, 1.4])

    def _detections_table(self, detections: Sequence[Detection]) -> Table:
        rows = [["No", "Date", "Patient", "Eye", "Result", "Conf.", "Risk"]] + [
            [
                str(i),
                _fmt_date(d.detected_at),
                d.patient_name or d.patient_code or "-",
                d.side_eye,
                grading.label_for(d.classification),
                _pct(d.confidence, 0),
                grading.risk_level_for(d.classification),
            ]
            for i, d in enumerate(detections, start=1)
        ]
        return self._table(rows, [0.4, 1.0, 1.5, 0.6, 1.3, 0.6, 0.8])

    # -----------------------------------------------------------------------
    # Page decoration and file output
    # -----------------------------------------------------------------------

    def _page_decorator(self, operator: User, generated: str) -> Callable[[Any, Any], None]:
        def draw(canvas, doc) -> None:
            page_w, page_h = A4
            canvas.saveState()
            canvas.setFillColor(_PRIMARY)
            canvas.setFont("Helvetica-Bold", 11)
            canvas.drawString(doc.leftMargin, page_h - 0.55 * inch, "DR DETECTION REPORT")
            canvas.setFont("Helvetica", 8)
            canvas.setFillColor(_MUTED)
            canvas.drawString(
                doc.leftMargin, page_h - 0.72 * inch, "Diabetic Retinopathy Detection System"
            )
            canvas.drawRightString(page_w - doc.rightMargin, page_h - 0.55 * inch, f"Generated: {generated}")

            canvas.setStrokeColor(_BORDER)
            canvas.line(doc.leftMargin, 0.75 * inch, page_w - doc.rightMargin, 0.75 * inch)
            canvas.drawString(
                doc.leftMargin, 0.55 * inch, "DR Detection App v1.0.0 | Confidential Medical Record"
            )
            canvas.drawRightString(
                page_w - doc.rightMargin,
                0.55 * inch,
                f"Operator: {operator.full_name} | Page {doc.page}",
            )
            canvas.restoreState()

        return draw

    def _target(self, stem: str, suffix: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        return self.output_dir / f"{clean_file_stem(stem)}_{stamp}{suffix}"

    def _write_pdf(self, story: list[Any], stem: str, operator: User) -> Path:
        try:
            path = self._target(stem, ".pdf")
            doc = SimpleDocTemplate(
                str(path),
                pagesize=A4,
                leftMargin=0.6 * inch,
                rightMargin=0.6 * inch,
                topMargin=1.0 * inch,
                bottomMargin=1.0 * inch,
                title=PDF_SUBJECT,
                author=operator.full_name,
            )
            decorate = self._page_decorator(operator, self._clock().strftime("%d %b %Y, %H:%M"))
            doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
            logger.info("PDF written to %s", path)
            self._share(path, PDF_SUBJECT)
        except Exception as exc:
            logger.error("PDF export failed: %s", exc)
            raise ExportError(f"Failed to generate PDF: {exc}") from exc
        return path

    def _fill_sheet(self, ws, headers: list[str], rows: list[list[Any]]) -> None:
        ws.append(headers)
        header_fill = PatternFill("solid", fgColor="1A3A5C")
        for cell in ws[1]:
            cell.font = Font(bold=True, color="FFFFFF")
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
        for row in rows:
            ws.append(row)
        for column_cells in ws.columns:
            ws.column_dimensions[column_cells[0].column_letter].width = 15
        ws.freeze_panes = "A2"

    def _write_excel(self, wb: Workbook, stem: str) -> Path:
        try:
            path = self._target(stem, ".xlsx")
            wb.save(path)
            logger.info("Excel written to %s", path)
            self._share(path, EXCEL_SUBJECT)
        except Exception as exc:
            logger.error("Excel export failed: %s", exc)
            raise ExportError(f"Failed to generate Excel: {exc}") from exc
        return path
