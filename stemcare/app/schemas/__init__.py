"""Pydantic schemas for API request/response validation."""

from stemcare.app.schemas.report import (
    ReportGenerateRequest,
    ReportStartedResponse,
    ReportResponse,
    ReportSummary,
    ReportListResponse,
    Pagination,
    PdfConversionResponse,
    ReconcileResponse,
    ReportCheckResponse,
    ExamSummaryResponse,
    ExamListResponse,
    DepartmentFindingsResponse,
    ExamDetailResponse,
)
from stemcare.app.schemas.settings import SystemSettingsResponse, SystemSettingsUpdate

__all__ = [
    "ReportGenerateRequest",
    "ReportStartedResponse",
    "ReportResponse",
    "ReportSummary",
    "ReportListResponse",
    "Pagination",
    "PdfConversionResponse",
    "ReconcileResponse",
    "ReportCheckResponse",
    "ExamSummaryResponse",
    "ExamListResponse",
    "DepartmentFindingsResponse",
    "ExamDetailResponse",
    "SystemSettingsResponse",
    "SystemSettingsUpdate",
]
