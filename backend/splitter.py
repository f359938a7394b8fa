"""
Report PDF splitter.

Loads a multi-page report PDF, matches every page against a class roster and
writes each matched page to its own single-page PDF under a timestamped
``pdf_result`` directory next to the source file.
"""

from __future__ import annotations

import io
import logging
import re
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pdfplumber
from PyPDF2 import PdfReader, PdfWriter

from matcher import MatchResult, RosterEntry, build_profiles, match_page

logger = logging.getLogger(__name__)

RESULT_DIR_NAME = "pdf_result"

# Letters transliterated when building file names
_FILE_NAME_LETTERS = str.maketrans({
    "ı": "i", "ğ": "g", "ü": "u", "ş": "s", "ö": "o", "ç": "c",
    "â": "a", "î": "i", "û": "u",
})


class PdfParseError(Exception):
    """The source PDF could not be processed at all."""


@dataclass
class FoundReport:
    """A matched page written out as its own PDF."""

    id: str
    student_name: str
    school_number: str
    matched_text: str
    file_name_by_school_no: str
    file_name_by_student: str
    page_number: int
    file_path: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ParseResult:
    """Aggregate result of one parse run."""

    found_reports: list[FoundReport] = field(default_factory=list)
    missing_students: list[str] = field(default_factory=list)
    has_duplicates: bool = False
    total_pages: int = 0
    output_dir: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# File naming
# ---------------------------------------------------------------------------

def sanitize_file_stem(name: str) -> str:
    """
    Turn a display name into a file-safe stem.

    "Ali Veli Yılmaz" -> "ali-veli-yilmaz"
    """
    stem = name.replace("İ", "i").lower()
    stem = re.sub(r"\s+", "-", stem)
    stem = stem.translate(_FILE_NAME_LETTERS)
    stem = re.sub(r"[^a-z0-9-]", "", stem)
    stem = re.sub(r"-+", "-", stem)
    return stem.strip("-")


def report_file_name(student_name: str, school_number: str, occurrence: int = 1) -> str:
    """``<name>-<schoolNo>.pdf``, with ``-<n>`` appended from the second occurrence on."""
    base = f"{sanitize_file_stem(student_name)}-{school_number}"
    if occurrence > 1:
        return f"{base}-{occurrence}.pdf"
    return f"{base}.pdf"


def make_output_dir(source_pdf_path: str | Path, now: datetime) -> Path:
    """``<source dir>/pdf_result/<YYYY-MM-DDTHH-MM-SS>``, created recursively."""
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    output_dir = Path(source_pdf_path).resolve().parent / RESULT_DIR_NAME / timestamp
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

class DuplicateTracker:
    """Counts how many pages resolved to each school number."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.has_duplicates = False

    def next_occurrence(self, school_number: str) -> int:
        return self.counts.get(school_number, 0) + 1

    def register(self, school_number: str) -> int:
        count = self.next_occurrence(school_number)
        self.counts[school_number] = count
        if count > 1:
            self.has_duplicates = True
        return count


def missing_students(entries: list[RosterEntry], found_names: set[str]) -> list[str]:
    """Roster names (in roster order) that were never matched."""
    return [e.full_name for e in entries if e.full_name not in found_names]


# ---------------------------------------------------------------------------
# Page extraction
# ---------------------------------------------------------------------------

def extract_page(reader: PdfReader, page_index: int) -> bytes:
    """Copy one page of ``reader`` into a new single-page PDF and return its bytes."""
    writer = PdfWriter()
    writer.add_page(reader.pages[page_index])
    stream = io.BytesIO()
    writer.write(stream)
    return stream.getvalue()


class ReportEmitter:
    """Writes matched pages to ``output_dir`` with deterministic names."""

    def __init__(self, reader: PdfReader, output_dir: Path, tracker: DuplicateTracker | None = None):
        self.reader = reader
        self.output_dir = Path(output_dir)
        self.tracker = tracker or DuplicateTracker()

    def emit(self, page_index: int, match: MatchResult) -> FoundReport:
        pdf_bytes = extract_page(self.reader, page_index)

        # Counted only once the file is written
        count = self.tracker.next_occurrence(match.school_number)
        file_name = report_file_name(match.student_full_name, match.school_number, count)
        file_path = self.output_dir / file_name
        file_path.write_bytes(pdf_bytes)
        self.tracker.register(match.school_number)

        return FoundReport(
            id=str(uuid.uuid4()),
            student_name=match.student_full_name,
            school_number=match.school_number,
            matched_text=match.matched_excerpt,
            file_name_by_school_no=file_name,
            file_name_by_student=file_name,
            page_number=page_index + 1,
            file_path=str(file_path),
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _load_pdf(pdf_bytes: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        # Forces the page tree to be parsed so broken files fail here
        len(reader.pages)
    except Exception as e:
        raise PdfParseError(f"Could not load PDF: {e}") from e
    return reader


def extract_page_texts(pdf_bytes: bytes) -> list[str]:
    """Extract the text layer of every page with pdfplumber."""
    try:
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            return [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise PdfParseError(f"Text extraction failed: {e}") from e


def parse_pdf_for_students(
    pdf_bytes: bytes,
    entries: list[RosterEntry],
    source_pdf_path: str | Path,
    clock: Callable[[], datetime] | None = None,
) -> ParseResult:
    """
    Split a report PDF into one file per matched page.

    Args:
        pdf_bytes: Raw bytes of the source PDF.
        entries: Filtered roster entries (see ``matcher.prepare_roster``).
        source_pdf_path: Path of the source PDF; only used to place the output dir.
        clock: Returns the current time; defaults to UTC wall-clock.

    Returns:
        ParseResult with found reports, missing students and duplicate flag.

    Raises:
        PdfParseError: If the PDF cannot be loaded, its text cannot be
            extracted, or the output directory cannot be created.
    """
    logger.info("Starting PDF parsing...")
    started = time.monotonic()

    reader = _load_pdf(pdf_bytes)
    total_pages = len(reader.pages)
    logger.info(f"PDF loaded with {total_pages} pages")

    page_texts = extract_page_texts(pdf_bytes)
    logger.info(f"Text extraction completed in {int((time.monotonic() - started) * 1000)}ms")

    profiles = build_profiles(entries)

    now = (clock or (lambda: datetime.now(timezone.utc)))()
    try:
        output_dir = make_output_dir(source_pdf_path, now)
    except OSError as e:
        raise PdfParseError(f"Could not create output directory: {e}") from e

    tracker = DuplicateTracker()
    emitter = ReportEmitter(reader, output_dir, tracker)
    found_reports: list[FoundReport] = []
    found_students: set[str] = set()

    for page_index in range(total_pages):
        try:
            page_text = page_texts[page_index] if page_index < len(page_texts) else ""
            match = match_page(page_text, profiles)
            if not match.matched:
                continue
            report = emitter.emit(page_index, match)
            found_reports.append(report)
            found_students.add(match.student_full_name)
            logger.debug(f"Page {page_index + 1}: {match.student_full_name} -> {report.file_name_by_school_no}")
        except Exception as e:
            logger.error(f"Error processing page {page_index + 1}: {e}")

    missing = missing_students(entries, found_students)
    elapsed = int((time.monotonic() - started) * 1000)
    logger.info(
        f"PDF parsing completed in {elapsed}ms. "
        f"Found {len(found_reports)} reports, {len(missing)} missing."
    )

    return ParseResult(
        found_reports=found_reports,
        missing_students=missing,
        has_duplicates=tracker.has_duplicates,
        total_pages=total_pages,
        output_dir=str(output_dir),
    )
