"""Encode record sets into downloadable report files (PDF, Excel, CSV, HTML, JSON)."""

from __future__ import annotations

import csv
import json
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import fitz
from jinja2 import Environment, FileSystemLoader, select_autoescape
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from core.logging import get_logger
from services.report_errors import RenderFailure
from services.report_policy import normalize_format

logger = get_logger(__name__)

REPO_ROOT = Path(__file__).resolve().parent.parent
TEMPLATE_DIR = REPO_ROOT / "templates" / "reports"

PDF_PAGE_RECT = fitz.Rect(36, 36, 559, 806)
PDF_ROWS_PER_PAGE = 40
EXCEL_MAX_COLUMN_WIDTH = 60
_HEADER_FILL = PatternFill(start_color="1F2937", end_color="1F2937", fill_type="solid")

_ENV: Optional[Environment] = None


def _get_env() -> Environment:
    global _ENV  # pylint: disable=global-statement
    if _ENV is None:
        _ENV = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(["html", "xml", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _ENV


def resolve_columns(records: Sequence[Mapping[str, Any]], metadata: Mapping[str, Any]) -> List[str]:
    """Requested columns, or every key in first-seen order."""
    requested = [str(column) for column in metadata.get("columns") or [] if column]
    if requested:
        return requested
    seen: Dict[str, None] = {}
    for record in records:
        for key in record.keys():
            seen.setdefault(str(key), None)
    return list(seen)


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def _rows(records: Iterable[Mapping[str, Any]], columns: Sequence[str]) -> List[List[Any]]:
    return [[_cell(record.get(column)) for column in columns] for record in records]


def _render_html(
    records: Sequence[Mapping[str, Any]],
    metadata: Mapping[str, Any],
    columns: Sequence[str],
    *,
    rows: Optional[List[List[Any]]] = None,
    show_header: bool = True,
    font_size: str = "11pt",
) -> str:
    template = _get_env().get_template("report.html.j2")
    return template.render(
        title=metadata.get("title") or "Report",
        description=metadata.get("description"),
        record_count=len(records),
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        insights=list(metadata.get("insights") or [])[:5],
        columns=columns,
        rows=rows if rows is not None else _rows(records, columns),
        show_header=show_header,
        font_size=font_size,
    )


def _write_csv(handle, records, metadata, columns) -> None:
    writer = csv.writer(handle)
    writer.writerow(columns)
    writer.writerows(_rows(records, columns))


def _write_json(handle, records, metadata, columns) -> None:
    payload = {
        "title": metadata.get("title"),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "recordCount": len(records),
        "columns": list(columns),
        "data": [{column: record.get(column) for column in columns} for record in records],
    }
    json.dump(payload, handle, ensure_ascii=False, default=str, indent=2)


def _write_html(handle, records, metadata, columns) -> None:
    handle.write(_render_html(records, metadata, columns))


def _auto_fit_columns(ws) -> None:
    for column_cells in ws.columns:
        max_length = 0
        column = column_cells[0].column if column_cells else 1
        for cell in column_cells:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[get_column_letter(column)].width = min(max_length + 2, EXCEL_MAX_COLUMN_WIDTH)


def _encode_excel(path: Path, records, metadata, columns) -> None:
    workbook = Workbook()
    data_ws = workbook.active
    data_ws.title = "Data"
    data_ws.append(list(columns))
    for cell in data_ws[1]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = _HEADER_FILL
    for row in _rows(records, columns):
        data_ws.append(row)
    data_ws.freeze_panes = "A2"
    _auto_fit_columns(data_ws)

    summary_ws = workbook.create_sheet("Summary")
    summary_ws.append(["Title", metadata.get("title")])
    summary_ws.append(["Description", metadata.get("description") or ""])
    summary_ws.append(["Records", len(records)])
    summary_ws.append(["Generated", datetime.now(timezone.utc).isoformat()])
    _auto_fit_columns(summary_ws)
    workbook.save(path)


def _encode_pdf(path: Path, records, metadata, columns) -> None:
    rows = _rows(records, columns)
    doc = fitz.open()
    try:
        chunks = [rows[start: start + PDF_ROWS_PER_PAGE] for start in range(0, len(rows), PDF_ROWS_PER_PAGE)] or [[]]
        for index, chunk in enumerate(chunks):
            page = doc.new_page()
            html = _render_html(records, metadata, columns, rows=chunk, show_header=index == 0, font_size="8pt")
            page.insert_htmlbox(PDF_PAGE_RECT, html)
        doc.save(str(path))
    finally:
        doc.close()


_TEXT_WRITERS: Dict[str, Callable] = {
    "CSV": _write_csv,
    "JSON": _write_json,
    "HTML": _write_html,
}
_BINARY_WRITERS: Dict[str, Callable] = {
    "EXCEL": _encode_excel,
    "PDF": _encode_pdf,
}


def encode(
    report_format: str,
    records: Sequence[Mapping[str, Any]],
    metadata: Mapping[str, Any],
    path: Path,
) -> int:
    """Write the artifact to ``path`` atomically and return its size in bytes."""
    key = normalize_format(report_format)
    columns = resolve_columns(records, metadata)
    tmp_file: Optional[Path] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            delete=False,
            dir=path.parent,
            prefix=f"{path.name}.",
            suffix=".tmp",
        ) as handle:
            tmp_file = Path(handle.name)
            if key in _TEXT_WRITERS:
                _TEXT_WRITERS[key](handle, records, metadata, columns)
        if key in _BINARY_WRITERS:
            _BINARY_WRITERS[key](tmp_file, records, metadata, columns)
        tmp_file.replace(path)
    except Exception as exc:
        if tmp_file is not None:
            tmp_file.unlink(missing_ok=True)
        logger.error("Failed to encode %s report at %s: %s", key, path, exc, exc_info=True)
        raise RenderFailure(f"Failed to encode {key} report: {exc}") from exc
    size = path.stat().st_size
    logger.info("Encoded %s report (%d rows, %d bytes) at %s.", key, len(records), size, path)
    return size


__all__ = ["encode", "resolve_columns"]
