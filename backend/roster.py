"""
Class roster persistence and spreadsheet import.

Rosters are stored as a single JSON document:
``{class name: {student full name: {"Okul No": ..., parent contact fields}}}``.
The e-mail template used for report mails lives next to it.
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

from openpyxl import load_workbook

logger = logging.getLogger(__name__)

NAME_KEY = "Ad Soyad"
SCHOOL_NO_KEY = "Okul No"
CONTACT_KEYS = [
    "Anne Adı Soyadı",
    "Anne E-posta",
    "Anne Telefon",
    "Baba Adı Soyadı",
    "Baba E-posta",
    "Baba Telefon",
]

DEFAULT_EMAIL_TEMPLATE = {
    "subject": "{{Okul No}} - {{Ad Soyad}} Sınav Sonucu",
    "message": (
        "Sayın {{Anne Adı Soyadı}} ve {{Baba Adı Soyadı}},\n\n"
        "Öğrenciniz {{Ad Soyad}} ({{Okul No}}) için sınav sonucu ekte yer almaktadır.\n\n"
        "Saygılarımızla."
    ),
    "cc": "",
    "bcc": "",
}


class RosterImportError(ValueError):
    """The uploaded spreadsheet could not be used as a roster."""


class RosterStore:
    """JSON-file backed store for class rosters and the e-mail template."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    @property
    def data_file(self) -> Path:
        return self.data_dir / "student_data.json"

    @property
    def template_file(self) -> Path:
        return self.data_dir / "email_template.json"

    # ── Raw document ───────────────────────────────────────────────

    def load(self) -> dict[str, dict[str, dict]]:
        """Return all classes; a missing or unreadable file counts as empty."""
        try:
            parsed = json.loads(self.data_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.error(f"Error loading data from {self.data_file}: {e}")
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def save(self, data: dict[str, dict[str, dict]]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.data_file.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    # ── Classes ────────────────────────────────────────────────────

    def get_classes(self) -> list[str]:
        return list(self.load().keys())

    def get_students(self, class_name: str) -> dict[str, dict]:
        return self.load().get(class_name, {})

    def save_class(self, class_name: str, students: dict[str, dict] | None = None) -> None:
        data = self.load()
        data[class_name] = students or {}
        self.save(data)

    def delete_class(self, class_name: str) -> None:
        data = self.load()
        data.pop(class_name, None)
        self.save(data)

    # ── Students ───────────────────────────────────────────────────

    def save_student(self, class_name: str, student_name: str, info: dict) -> None:
        data = self.load()
        data.setdefault(class_name, {})[student_name] = info
        self.save(data)

    def update_student(self, class_name: str, old_name: str, new_name: str, info: dict) -> None:
        """Save ``info`` under ``new_name``, dropping ``old_name`` when it was renamed."""
        data = self.load()
        students = data.setdefault(class_name, {})
        if old_name != new_name:
            students.pop(old_name, None)
        students[new_name] = info
        self.save(data)

    def delete_student(self, class_name: str, student_name: str) -> None:
        data = self.load()
        if class_name in data:
            data[class_name].pop(student_name, None)
            self.save(data)

    # ── E-mail template ────────────────────────────────────────────

    def get_email_template(self) -> dict[str, str]:
        try:
            template = json.loads(self.template_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return dict(DEFAULT_EMAIL_TEMPLATE)
        return {
            **template,
            "cc": template.get("cc") or "",
            "bcc": template.get("bcc") or "",
        }

    def save_email_template(self, template: dict[str, str]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.template_file.write_text(json.dumps(template, indent=2, ensure_ascii=False), encoding="utf-8")


# ---------------------------------------------------------------------------
# Spreadsheet import
# ---------------------------------------------------------------------------

def _cell_text(value) -> str:
    """Stringify a cell, keeping integral numbers free of a trailing ``.0``."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def read_roster_rows(content: bytes) -> list[dict[str, str]]:
    """
    Read the first worksheet of an .xlsx file into row dicts keyed by header.

    Raises:
        RosterImportError: If the workbook cannot be read or lacks the
            ``Ad Soyad`` / ``Okul No`` columns.
    """
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise RosterImportError(f"Could not read spreadsheet: {e}") from e

    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            raise RosterImportError("Spreadsheet is empty.")

        headers = [_cell_text(h) for h in header]
        missing = [k for k in (NAME_KEY, SCHOOL_NO_KEY) if k not in headers]
        if missing:
            raise RosterImportError(f"Missing required column(s): {', '.join(missing)}")

        records = []
        for row in rows:
            if not row or all(cell is None for cell in row):
                continue
            records.append({
                h: _cell_text(row[idx]) if idx < len(row) else ""
                for idx, h in enumerate(headers)
                if h
            })
        return records
    finally:
        wb.close()


def import_roster_from_excel(store: RosterStore, class_name: str, content: bytes) -> int:
    """
    Merge students from an .xlsx roster into ``class_name``.

    Rows need both ``Ad Soyad`` and ``Okul No``; existing students with the
    same name are overwritten.

    Returns:
        Number of imported students.
    """
    students = store.get_students(class_name)
    count = 0
    for row in read_roster_rows(content):
        name = row.get(NAME_KEY, "")
        school_no = row.get(SCHOOL_NO_KEY, "")
        if not name or not school_no:
            continue
        students[name] = {SCHOOL_NO_KEY: school_no, **{k: row.get(k, "") for k in CONTACT_KEYS}}
        count += 1

    store.save_class(class_name, students)
    logger.info(f"Imported {count} student(s) into class '{class_name}'")
    return count
