"""
Pydantic models for the Report Splitter API.

Defines request/response schemas for roster, parsing, packaging and e-mail endpoints.
"""

from typing import Literal

from pydantic import BaseModel


class ClassCreateRequest(BaseModel):
    """Request body for creating an (empty) class."""

    name: str


class ClassListResponse(BaseModel):
    success: bool
    classes: list[str] = []


class StudentSaveRequest(BaseModel):
    """Create or update a student; ``new_name`` renames the student."""

    # Keys as stored: "Okul No", "Anne E-posta", …
    info: dict[str, str]
    new_name: str | None = None


class StudentsResponse(BaseModel):
    success: bool
    students: dict[str, dict[str, str]] = {}


class RosterImportResponse(BaseModel):
    """Response from the spreadsheet import endpoint."""

    success: bool
    count: int = 0


class FoundReport(BaseModel):
    """A page matched to a student and written to its own PDF."""

    id: str
    student_name: str
    school_number: str
    matched_text: str
    file_name_by_school_no: str
    file_name_by_student: str
    page_number: int
    file_path: str


class ParseResponse(BaseModel):
    """Response from the parse endpoint."""

    success: bool
    found_reports: list[FoundReport] = []
    missing_students: list[str] = []
    has_duplicates: bool = False
    total_pages: int = 0
    output_dir: str = ""


class ParseResultRequest(BaseModel):
    """A previously returned parse result, sent back for export."""

    found_reports: list[FoundReport]
    missing_students: list[str] = []
    has_duplicates: bool = False
    total_pages: int = 0
    output_dir: str = ""


class ZipRequest(BaseModel):
    """Request body for the ZIP download endpoint."""

    reports: list[FoundReport]
    naming_mode: Literal["schoolNo", "name"] = "schoolNo"


class EmailTemplate(BaseModel):
    subject: str
    message: str
    cc: str = ""   # comma-separated
    bcc: str = ""  # comma-separated


class EmailDraftRequest(BaseModel):
    report: FoundReport


class EmailDraft(BaseModel):
    """A rendered e-mail ready to be handed to a mail client."""

    to: list[str]
    cc: list[str] = []
    bcc: list[str] = []
    subject: str
    body: str
    attachment_path: str


class ActionResponse(BaseModel):
    """Generic response for endpoints without a payload."""

    success: bool
    message: str = ""
