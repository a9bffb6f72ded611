from __future__ import annotations

import csv
import json
from datetime import date

import pytest
from openpyxl import load_workbook

from services import document_encoder
from services.report_errors import RenderFailure

RECORDS = [
    {"region": "North", "amount": 120.5, "day": date(2024, 1, 2)},
    {"region": "South", "amount": None, "extra": {"k": 1}},
]


def test_columns_default_to_first_seen_keys() -> None:
    assert document_encoder.resolve_columns(RECORDS, {}) == ["region", "amount", "day", "extra"]
    assert document_encoder.resolve_columns(RECORDS, {"columns": ["amount"]}) == ["amount"]


def test_csv_output(tmp_path) -> None:
    path = tmp_path / "out" / "r.csv"
    size = document_encoder.encode("csv", RECORDS, {"columns": ["region", "amount", "day"]}, path)

    assert size == path.stat().st_size
    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == ["region", "amount", "day"]
    assert rows[1] == ["North", "120.5", "2024-01-02"]
    assert rows[2] == ["South", "", ""]
    assert list(path.parent.glob("*.tmp")) == []


def test_json_output(tmp_path) -> None:
    path = tmp_path / "r.json"
    document_encoder.encode("JSON", RECORDS, {"title": "Sales"}, path)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["title"] == "Sales"
    assert payload["recordCount"] == 2
    assert payload["columns"] == ["region", "amount", "day", "extra"]
    assert payload["data"][1]["extra"] == {"k": 1}


def test_html_output_escapes_values(tmp_path) -> None:
    path = tmp_path / "r.html"
    document_encoder.encode("HTML", [{"name": "<b>x</b>"}], {"title": "Sales & Co"}, path)

    html = path.read_text(encoding="utf-8")
    assert "Sales &amp; Co" in html
    assert "&lt;b&gt;x&lt;/b&gt;" in html


def test_excel_output_has_data_and_summary_sheets(tmp_path) -> None:
    path = tmp_path / "r.xlsx"
    document_encoder.encode("EXCEL", RECORDS, {"title": "Sales"}, path)

    workbook = load_workbook(path)
    assert workbook.sheetnames == ["Data", "Summary"]
    data = workbook["Data"]
    assert [cell.value for cell in data[1]] == ["region", "amount", "day", "extra"]
    assert data["A2"].value == "North"
    assert data.freeze_panes == "A2"
    assert workbook["Summary"]["B1"].value == "Sales"


def test_pdf_output_is_a_pdf(tmp_path) -> None:
    path = tmp_path / "r.pdf"
    size = document_encoder.encode("PDF", [{"n": index} for index in range(45)], {"title": "Sales"}, path)

    assert size > 0
    assert path.read_bytes().startswith(b"%PDF")


def test_writer_failure_raises_render_failure_and_cleans_up(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    def broken_writer(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setitem(document_encoder._TEXT_WRITERS, "CSV", broken_writer)
    path = tmp_path / "r.csv"

    with pytest.raises(RenderFailure):
        document_encoder.encode("CSV", RECORDS, {}, path)

    assert not path.exists()
    assert list(tmp_path.glob("*.tmp")) == []


def test_unusable_storage_directory_is_a_render_failure(tmp_path) -> None:
    blocker = tmp_path / "storage"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(RenderFailure):
        document_encoder.encode("CSV", RECORDS, {}, blocker / "reports" / "r.csv")
