"""
FastAPI application for the Report Splitter.

Provides endpoints for managing class rosters, splitting a report PDF into
one file per student, and packaging or mailing the resulting reports.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, Query, UploadFile

# ── Logging setup ──────────────────────────────────────────────────
logging.basicConfig(
    level=os.environ.get("REPORT_SPLITTER_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("report-splitter")
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, StreamingResponse

from exporter import build_email_draft, build_reports_zip, export_results_to_excel
from matcher import prepare_roster
from models import (
    ActionResponse,
    ClassCreateRequest,
    ClassListResponse,
    EmailDraft,
    EmailDraftRequest,
    EmailTemplate,
    ParseResponse,
    ParseResultRequest,
    RosterImportResponse,
    StudentSaveRequest,
    StudentsResponse,
    ZipRequest,
)
from roster import RosterImportError, RosterStore, import_roster_from_excel
from splitter import FoundReport, ParseResult, PdfParseError, parse_pdf_for_students

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Report Splitter",
    description="Split a multi-student report PDF into one PDF per student of a class roster.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Roster JSON and e-mail template (configurable via env var)
DATA_DIR = Path(os.environ.get("REPORT_SPLITTER_DATA_DIR", str(Path.home() / ".report-splitter")))

# Uploaded source PDFs; each parse writes its pdf_result/ next to the upload
UPLOAD_DIR = Path(
    os.environ.get("REPORT_SPLITTER_UPLOAD_DIR", str(Path(tempfile.gettempdir()) / "report_splitter_uploads"))
)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

store = RosterStore(DATA_DIR)

log.info("=" * 60)
log.info("Report Splitter starting up")
log.info(f"Data dir     : {DATA_DIR}")
log.info(f"Upload dir   : {UPLOAD_DIR}")
log.info("=" * 60)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_found_report(report) -> FoundReport:
    """Convert the API model back to the splitter's dataclass."""
    return FoundReport(**report.model_dump())


def _to_parse_result(request: ParseResultRequest) -> ParseResult:
    return ParseResult(
        found_reports=[_to_found_report(r) for r in request.found_reports],
        missing_students=request.missing_students,
        has_duplicates=request.has_duplicates,
        total_pages=request.total_pages,
        output_dir=request.output_dir,
    )


def _resolve_report_path(path: str) -> Path:
    """Only files produced under the upload dir may be served or deleted."""
    resolved = Path(path).resolve()
    if not resolved.is_relative_to(UPLOAD_DIR.resolve()):
        raise HTTPException(status_code=400, detail="Path is outside the report directory.")
    if not resolved.is_file():
        raise HTTPException(status_code=404, detail=f"Report not found: {resolved.name}")
    return resolved


def _require_class(class_name: str) -> None:
    if class_name not in store.get_classes():
        raise HTTPException(status_code=404, detail=f"Class not found: {class_name}")


# ---------------------------------------------------------------------------
# Routes: classes & students
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    return {"message": "Report Splitter API"}


@app.get("/api/classes", response_model=ClassListResponse)
async def list_classes():
    return ClassListResponse(success=True, classes=store.get_classes())


@app.post("/api/classes", response_model=ActionResponse)
async def create_class(request: ClassCreateRequest):
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Class name is required.")
    if name in store.get_classes():
        raise HTTPException(status_code=400, detail=f"Class already exists: {name}")
    store.save_class(name)
    log.info(f"[ROSTER] Created class '{name}'")
    return ActionResponse(success=True)


@app.delete("/api/classes/{class_name}", response_model=ActionResponse)
async def delete_class(class_name: str):
    _require_class(class_name)
    store.delete_class(class_name)
    log.info(f"[ROSTER] Deleted class '{class_name}'")
    return ActionResponse(success=True)


@app.get("/api/classes/{class_name}/students", response_model=StudentsResponse)
async def get_students(class_name: str):
    _require_class(class_name)
    return StudentsResponse(success=True, students=store.get_students(class_name))


@app.put("/api/classes/{class_name}/students/{student_name}", response_model=ActionResponse)
async def save_student(class_name: str, student_name: str, request: StudentSaveRequest):
    """Create a student, or update (and optionally rename) an existing one."""
    _require_class(class_name)
    new_name = (request.new_name or student_name).strip()
    if not new_name:
        raise HTTPException(status_code=400, detail="Student name is required.")
    store.update_student(class_name, student_name, new_name, request.info)
    log.info(f"[ROSTER] Saved student '{new_name}' in '{class_name}'")
    return ActionResponse(success=True)


@app.delete("/api/classes/{class_name}/students/{student_name}", response_model=ActionResponse)
async def delete_student(class_name: str, student_name: str):
    _require_class(class_name)
    store.delete_student(class_name, student_name)
    log.info(f"[ROSTER] Deleted student '{student_name}' from '{class_name}'")
    return ActionResponse(success=True)


@app.post("/api/classes/{class_name}/roster", response_model=RosterImportResponse)
async def upload_roster(class_name: str, file: UploadFile = File(...)):
    """Import students from an .xlsx sheet with 'Ad Soyad' and 'Okul No' columns."""
    log.info(f"[ROSTER] Spreadsheet upload for '{class_name}': {file.filename}")
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Only .xlsx files are supported.")

    content = await file.read()
    try:
        count = import_roster_from_excel(store, class_name, content)
    except RosterImportError as e:
        log.warning(f"[ROSTER] ✗ Import failed: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    log.info(f"[ROSTER] ✓ Imported {count} student(s)")
    return RosterImportResponse(success=True, count=count)


# ---------------------------------------------------------------------------
# Routes: parsing
# ---------------------------------------------------------------------------

@app.post("/api/classes/{class_name}/parse", response_model=ParseResponse)
async def parse_pdf(class_name: str, file: UploadFile = File(...)):
    """
    Upload a report PDF and split it into one PDF per matched student.

    Output files are written to ``pdf_result/<timestamp>/`` next to the
    stored upload.
    """
    _require_class(class_name)
    log.info(f"[PARSE] Received {file.filename} for class '{class_name}'")

    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="No valid PDF file found in upload.")

    entries = prepare_roster(store.get_students(class_name))
    if not entries:
        log.warning(f"[PARSE] No valid students in '{class_name}'")
        raise HTTPException(
            status_code=400,
            detail="No valid students found in class. Students need school number and at least 2 name parts.",
        )

    session_dir = UPLOAD_DIR / str(uuid.uuid4())
    session_dir.mkdir(parents=True, exist_ok=True)
    source_path = session_dir / Path(file.filename).name
    content = await file.read()
    source_path.write_bytes(content)
    log.debug(f"[PARSE] Saved upload to {source_path} ({len(content)} bytes)")

    try:
        result = parse_pdf_for_students(content, entries, source_path)
    except PdfParseError as e:
        log.error(f"[PARSE] ✗ {e}")
        raise HTTPException(status_code=500, detail=str(e))

    log.info(
        f"[PARSE] ✓ {len(result.found_reports)} report(s) from {result.total_pages} page(s), "
        f"{len(result.missing_students)} missing, duplicates={result.has_duplicates}"
    )
    return ParseResponse(success=True, **result.to_dict())


# ---------------------------------------------------------------------------
# Routes: reports
# ---------------------------------------------------------------------------

@app.get("/api/reports/file")
async def download_report(path: str = Query(...), file_name: str | None = None):
    resolved = _resolve_report_path(path)
    return FileResponse(str(resolved), media_type="application/pdf", filename=file_name or resolved.name)


@app.delete("/api/reports/file", response_model=ActionResponse)
async def delete_report(path: str = Query(...)):
    resolved = _resolve_report_path(path)
    resolved.unlink()
    log.info(f"[REPORT] Deleted {resolved}")
    return ActionResponse(success=True)


@app.post("/api/reports/zip")
async def download_zip(request: ZipRequest):
    log.info(f"[ZIP] {len(request.reports)} report(s), naming={request.naming_mode}")
    if not request.reports:
        raise HTTPException(status_code=400, detail="No reports to package.")

    for report in request.reports:
        _resolve_report_path(report.file_path)

    stream = build_reports_zip([_to_found_report(r) for r in request.reports], request.naming_mode)
    return StreamingResponse(
        stream,
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename=reports_{request.naming_mode}.zip"},
    )


@app.post("/api/reports/excel")
async def export_excel(request: ParseResultRequest):
    log.info(f"[EXCEL] Export requested ({len(request.found_reports)} reports)")
    stream = export_results_to_excel(_to_parse_result(request))
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": "attachment; filename=report_summary.xlsx"},
    )


# ---------------------------------------------------------------------------
# Routes: e-mail
# ---------------------------------------------------------------------------

@app.get("/api/email-template", response_model=EmailTemplate)
async def get_email_template():
    return EmailTemplate(**store.get_email_template())


@app.put("/api/email-template", response_model=ActionResponse)
async def save_email_template(template: EmailTemplate):
    store.save_email_template(template.model_dump())
    log.info("[EMAIL] Template saved")
    return ActionResponse(success=True)


@app.post("/api/classes/{class_name}/email-draft", response_model=EmailDraft)
async def email_draft(class_name: str, request: EmailDraftRequest):
    _require_class(class_name)
    students = store.get_students(class_name)
    info = students.get(request.report.student_name)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Student not found: {request.report.student_name}")

    draft = build_email_draft(store.get_email_template(), request.report.student_name, info, request.report.file_path)
    if not draft["to"]:
        log.warning(f"[EMAIL] No parent e-mail for {request.report.student_name}")
    return EmailDraft(**draft)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
