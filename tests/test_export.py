import pytest
from openpyxl import load_workbook

from core.errors import ExportError
import storage.export as export_module
from storage.export import EXCEL_SUBJECT, PDF_SUBJECT, ReportExporter, breakdown_rows, clean_file_stem
from storage.models import Detection, Patient, User
from tests.factories import detection_json, patient_json, user_json


@pytest.fixture
def exporter(tmp_path, clock, shared):
    return ReportExporter(
        output_dir=tmp_path / "reports",
        share=lambda path, subject: shared.append((path, subject)),
        clock=clock,
    )


@pytest.fixture
def operator():
    return User.model_validate(user_json())


@pytest.fixture
def patient():
    return Patient.model_validate(patient_json())


@pytest.fixture
def detections():
    return [Detection.model_validate(detection_json(i, c)) for i, c in ((1, 0), (2, 2), (3, 4))]


def test_clean_file_stem():
    assert clean_file_stem("detections_PT/001?") == "detections_PT001"
    assert clean_file_stem("!!!") == "report"


def test_full_report_with_no_detections(exporter, operator, patient, shared):
    path = exporter.export_full_report_pdf([patient], [], operator, total_scans=0)
    assert path.exists()
    assert path.read_bytes().startswith(b"%PDF")
    assert path.name == "full_report_20240615_100000.pdf"
    assert shared == [(path, PDF_SUBJECT)]


def test_breakdown_rows_with_no_detections_are_zero():
    header, *rows = breakdown_rows([])
    assert header == ["Classification", "Count", "Percentage"]
    assert [r[0] for r in rows] == ["No DR", "Mild NPDR", "Moderate NPDR", "Severe NPDR", "Proliferative DR"]
    assert all(r[1:] == ["0", "0%"] for r in rows)


def test_breakdown_rows_with_detections(detections):
    rows = {r[0]: r[1:] for r in breakdown_rows(detections)[1:]}
    assert rows["Moderate NPDR"] == ["1", "33.3%"]
    assert rows["Mild NPDR"] == ["0", "0.0%"]


def test_full_report_renders_zero_breakdown(exporter, operator, patient, monkeypatch):
    rendered = []

    def capture(detections):
        rows = breakdown_rows(detections)
        rendered.append(rows)
        return rows

    monkeypatch.setattr(export_module, "breakdown_rows", capture)
    exporter.export_full_report_pdf([patient], [], operator, total_scans=0)

    assert len(rendered) == 1
    assert all(row[1:] == ["0", "0%"] for row in rendered[0][1:])


def test_patient_report_with_chart(exporter, operator, patient, detections):
    path = exporter.export_patient_report_pdf(patient, detections, operator)
    assert path.read_bytes().startswith(b"%PDF")
    assert path.name == "patient_report_PT001_20240615_100000.pdf"


def test_patient_report_with_single_detection(exporter, operator, patient, detections):
    path = exporter.export_patient_report_pdf(patient, detections[:1], operator)
    assert path.exists()


def test_list_reports(exporter, operator, patient, detections):
    assert exporter.export_patients_pdf([patient], operator).exists()
    assert exporter.export_detections_pdf(detections, operator).exists()
    path = exporter.export_detections_pdf(detections, operator, patient=patient)
    assert path.name.startswith("detections_PT001_")


def test_patients_excel(exporter, patient, shared):
    path = exporter.export_patients_excel([patient])
    ws = load_workbook(path)["Patients"]
    assert ws["B1"].value == "Patient Code"
    assert ws["B2"].value == "PT-001"
    assert ws.max_row == 2
    assert shared[-1] == (path, EXCEL_SUBJECT)


def test_detections_excel_has_summary_sheet(exporter, detections):
    wb = load_workbook(exporter.export_detections_excel(detections))
    assert wb.sheetnames == ["Detections", "Summary"]
    assert wb["Detections"].max_row == 4
    summary = {row[0]: (row[1], row[2]) for row in wb["Summary"].iter_rows(min_row=2, values_only=True)}
    assert summary["No DR"] == (1, "33.3%")
    assert summary["Severe NPDR"] == (0, "0.0%")
    assert summary["Total"] == (3, "100%")


def test_empty_detections_excel_formats_zero(exporter):
    wb = load_workbook(exporter.export_detections_excel([]))
    summary = {row[0]: row[2] for row in wb["Summary"].iter_rows(min_row=2, values_only=True)}
    assert summary["Proliferative DR"] == "0%"
    assert summary["Total"] == "0%"


def test_share_failure_is_reported_as_export_error(tmp_path, clock, operator, patient):
    def broken_share(path, subject):
        raise OSError("no handler")

    exporter = ReportExporter(output_dir=tmp_path, share=broken_share, clock=clock)
    with pytest.raises(ExportError, match="Failed to generate PDF"):
        exporter.export_patients_pdf([patient], operator)
