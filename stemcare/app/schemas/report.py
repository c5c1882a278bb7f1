"""Report-related schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, computed_field
from pydantic.alias_generators import to_camel

from stemcare.app.models.report import Report, ReportStatus

CAMEL_CASE_CONFIG = {
    "from_attributes": True,
    "populate_by_name": True,
    "alias_generator": to_camel,
}


class ReportGenerateRequest(BaseModel):
    """
    Schema for requesting a report.

    Both fields are optional at the schema level so that a missing value is
    answered with the same 400 error as an invalid one.
    """

    customer_id: str | None = Field(default=None, description="Owning customer ID")
    input_ids: list[str] | None = Field(
        default=None,
        description="Medical exam IDs in the order they should appear in the report"
    )

    model_config = CAMEL_CASE_CONFIG


class ReportStartedResponse(BaseModel):
    """Schema returned immediately by the fire-and-poll create endpoint."""

    report_id: str = Field(..., description="Report ID to poll")
    status: ReportStatus = Field(..., description="Always processing")
    status_label: str = Field(..., description="Display label of the status")
    input_ids: list[str] = Field(..., description="Accepted input IDs")

    model_config = CAMEL_CASE_CONFIG

    @classmethod
    def from_report(cls, report: Report) -> "ReportStartedResponse":
        return cls(
            report_id=report.id,
            status=report.report_status,
            status_label=report.report_status.label,
            input_ids=list(report.input_ids),
        )


class ReportResponse(BaseModel):
    """Schema for the full state of one report (polling and sync create)."""

    report_id: str = Field(..., description="Report ID")
    kind: str = Field(..., description="Report kind")
    customer_id: str = Field(..., description="Owning customer ID")
    customer_name: str | None = Field(None, description="Customer name snapshot")
    input_ids: list[str] = Field(..., description="Source exam IDs")
    status: ReportStatus = Field(..., description="pending/processing/completed/failed")
    status_label: str = Field(..., description="Display label of the status")
    content: str | None = Field(None, description="Markdown content (completed only)")
    error_message: str | None = Field(None, description="Diagnostic text (failed only)")
    has_artifact: bool = Field(default=False, description="Whether a converted PDF is cached")
    processing_time_ms: int | None = Field(None, description="Generation wall-clock time")
    model_identifier: str | None = Field(None, description="Model that produced the content")
    token_count: int | None = Field(None, description="Tokens used by the analysis call")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last transition timestamp (UTC)")

    model_config = CAMEL_CASE_CONFIG

    @classmethod
    def from_report(cls, report: Report) -> "ReportResponse":
        status = report.report_status
        return cls(
            report_id=report.id,
            kind=report.kind,
            customer_id=report.customer_id,
            customer_name=report.customer_name,
            input_ids=list(report.input_ids),
            status=status,
            status_label=status.label,
            content=report.content if status == ReportStatus.COMPLETED else None,
            error_message=report.error_message if status == ReportStatus.FAILED else None,
            has_artifact=report.artifact is not None,
            processing_time_ms=report.processing_time_ms,
            model_identifier=report.model_identifier,
            token_count=report.token_count,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )


class ReportSummary(BaseModel):
    """Schema for a report in a list (no content)."""

    report_id: str = Field(..., validation_alias="id", description="Report ID")
    kind: str
    customer_id: str
    customer_name: str | None = None
    input_ids: list[str]
    status: ReportStatus
    processing_time_ms: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = CAMEL_CASE_CONFIG

    @computed_field(alias="statusLabel")
    @property
    def status_label(self) -> str:
        return self.status.label


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    model_config = CAMEL_CASE_CONFIG


class ReportListResponse(BaseModel):
    """Schema for a page of report summaries."""

    reports: list[ReportSummary]
    pagination: Pagination

    model_config = CAMEL_CASE_CONFIG


class PdfConversionResponse(BaseModel):
    """Schema for a converted report document."""

    report_id: str
    pdf_data: str = Field(..., description="Base64-encoded PDF")
    file_name: str
    cached: bool = Field(..., description="Served from the stored artifact")
    processing_time_ms: int

    model_config = CAMEL_CASE_CONFIG


class ReconcileResponse(BaseModel):
    """Schema for the stale-report sweep result."""

    swept_report_ids: list[str]
    count: int

    model_config = CAMEL_CASE_CONFIG


class ReportCheckResponse(BaseModel):
    """Schema for the existing-report lookup."""

    has_report: bool
    report: ReportSummary | None = None

    model_config = CAMEL_CASE_CONFIG


class ExamSummaryResponse(BaseModel):
    """Schema for one selectable exam."""

    exam_id: str
    exam_date: str | None = Field(None, description="Date of the first department record")
    department_count: int
    has_laboratory: bool

    model_config = CAMEL_CASE_CONFIG


class ExamListResponse(BaseModel):
    """Schema for a customer's exams, newest first."""

    customer_id: str
    exams: list[ExamSummaryResponse]
    total: int

    model_config = CAMEL_CASE_CONFIG


class DepartmentFindingsResponse(BaseModel):
    department: str
    assessment_date: str | None = None
    doctor: str | None = None
    lines: list[str]
    summary: str | None = None

    model_config = CAMEL_CASE_CONFIG


class ExamDetailResponse(BaseModel):
    """Schema for the findings of one exam, as they are sent to the analysis service."""

    exam_id: str
    exam_date: str | None = None
    departments: list[DepartmentFindingsResponse]

    model_config = CAMEL_CASE_CONFIG
