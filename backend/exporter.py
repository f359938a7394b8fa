"""
Export module for split report results.

Supports:
  - ZIP bundles of the extracted single-page PDFs
  - An Excel (.xlsx) summary of a parse run via openpyxl
  - Rendering the report e-mail template for one student
"""

from __future__ import annotations

import io
import re
import zipfile
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from roster import CONTACT_KEYS, NAME_KEY, SCHOOL_NO_KEY
from splitter import FoundReport, ParseResult

REPORT_HEADERS = ["Page", "Student", "School No", "File Name", "Matched Text"]
MISSING_HEADERS = ["Student"]

NAMING_MODES = ("schoolNo", "name")

PARENT_EMAIL_KEYS = ["Anne E-posta", "Baba E-posta"]


# ---------------------------------------------------------------------------
# ZIP
# ---------------------------------------------------------------------------

def _zip_entry_name(file_name: str) -> str:
    name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", file_name)
    return re.sub(r"\s+", "_", name)


def _numbered_entry(entry: str, n: int) -> str:
    """Insert "_<n>" before a trailing ".pdf": report.pdf -> report_2.pdf."""
    return re.sub(r"(\.pdf)?$", f"_{n}\\1", entry, count=1, flags=re.IGNORECASE)


def build_reports_zip(reports: list[FoundReport], naming_mode: str = "schoolNo") -> io.BytesIO:
    """
    Bundle extracted report PDFs into a ZIP archive.

    Args:
        reports: Reports to include; each ``file_path`` must exist.
        naming_mode: "schoolNo" uses ``file_name_by_school_no``, "name" uses
                     ``file_name_by_student``.

    Returns:
        BytesIO stream containing the archive.

    Raises:
        ValueError: On an unknown naming mode.
        FileNotFoundError: If a report file is gone.
    """
    if naming_mode not in NAMING_MODES:
        raise ValueError(f"Unknown naming mode: {naming_mode}")

    name_counts: dict[str, int] = {}
    stream = io.BytesIO()
    with zipfile.ZipFile(stream, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for report in reports:
            file_name = report.file_name_by_school_no if naming_mode == "schoolNo" else report.file_name_by_student
            entry = _zip_entry_name(file_name)

            if entry in name_counts:
                name_counts[entry] += 1
                final_name = _numbered_entry(entry, name_counts[entry])
            else:
                name_counts[entry] = 1
                final_name = entry

            zf.writestr(final_name, Path(report.file_path).read_bytes())

    stream.seek(0)
    return stream


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

def _write_header(ws, headers: list[str]) -> None:
    header_font = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")

    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment


def _autofit(ws, headers: list[str]) -> None:
    for col_idx, header in enumerate(headers, start=1):
        max_len = len(header)
        for row in ws.iter_rows(min_row=2, min_col=col_idx, max_col=col_idx):
            for cell in row:
                if cell.value:
                    max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[ws.cell(row=1, column=col_idx).column_letter].width = max_len + 3


def export_results_to_excel(result: ParseResult) -> io.BytesIO:
    """
    Generate an Excel workbook summarising a parse run.

    Args:
        result: The parse result to summarise.

    Returns:
        BytesIO stream containing the .xlsx file.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Reports"
    _write_header(ws, REPORT_HEADERS)

    for row_idx, report in enumerate(result.found_reports, start=2):
        values = [report.page_number, report.student_name, report.school_number, report.file_name_by_school_no, report.matched_text]
        for col_idx, value in enumerate(values, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)
    _autofit(ws, REPORT_HEADERS)

    missing_ws = wb.create_sheet("Missing")
    _write_header(missing_ws, MISSING_HEADERS)
    for row_idx, name in enumerate(result.missing_students, start=2):
        missing_ws.cell(row=row_idx, column=1, value=name)
    _autofit(missing_ws, MISSING_HEADERS)

    stream = io.BytesIO()
    wb.save(stream)
    stream.seek(0)
    return stream


# ---------------------------------------------------------------------------
# E-mail
# ---------------------------------------------------------------------------

def render_template(text: str, variables: dict[str, str]) -> str:
    """Replace ``{{Key}}`` placeholders; unknown keys are left as they are."""
    result = text
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value or "")
    return result


def _split_addresses(value: str | None) -> list[str]:
    return [a.strip() for a in (value or "").split(",") if a.strip()]


def build_email_draft(template: dict[str, str], student_name: str, info: dict, attachment_path: str) -> dict:
    """
    Render the e-mail template for one student's report.

    Returns:
        Dict with keys: to, cc, bcc, subject, body, attachment_path.
    """
    variables = {NAME_KEY: student_name, SCHOOL_NO_KEY: str(info.get(SCHOOL_NO_KEY, ""))}
    variables.update({k: str(info.get(k) or "") for k in CONTACT_KEYS})

    return {
        "to": [info[k].strip() for k in PARENT_EMAIL_KEYS if (info.get(k) or "").strip()],
        "cc": _split_addresses(template.get("cc")),
        "bcc": _split_addresses(template.get("bcc")),
        "subject": render_template(template.get("subject", ""), variables),
        "body": render_template(template.get("message", ""), variables),
        "attachment_path": attachment_path,
    }
