"""Report generation API endpoints."""

import base64
import logging
import math
from datetime import date
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stemcare.app.db.base import get_db, get_session_factory
from stemcare.app.models.report import ReportKind
from stemcare.app.schemas.report import (
    ExamDetailResponse,
    ExamListResponse,
    ExamSummaryResponse,
    Pagination,
    PdfConversionResponse,
    ReconcileResponse,
    ReportCheckResponse,
    ReportGenerateRequest,
    ReportListResponse,
    ReportResponse,
    ReportStartedResponse,
    ReportSummary,
)
from stemcare.app.services.llm import AnalysisService, get_analysis_service
from stemcare.app.services.pdf_generator import HttpPDFConverter, PDFGenerator, get_pdf_generator
from stemcare.app.services.report_generator import report_file_name
from stemcare.app.services.report_service import ReportService
from stemcare.app.services.system_settings import SystemSettingsCache, get_system_settings
from stemcare.app.services.task_runner import (
    GenerationTaskRunner,
    StaleReportReconciler,
    get_task_runner,
)

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)


def get_report_service(
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    analysis_service: AnalysisService = Depends(get_analysis_service),
    converter: PDFGenerator | HttpPDFConverter = Depends(get_pdf_generator),
    task_runner: GenerationTaskRunner = Depends(get_task_runner),
    system_settings: SystemSettingsCache = Depends(get_system_settings),
) -> ReportService:
    """Build the report service for one request."""
    return ReportService(
        db,
        session_factory,
        analysis_service,
        converter,
        task_runner,
        system_settings=system_settings,
    )


def _attachment_headers(file_name: str) -> dict[str, str]:
    return {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}"}


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_stale_reports(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    task_runner: GenerationTaskRunner = Depends(get_task_runner),
) -> ReconcileResponse:
    """
    Move reports stuck in processing past the stale window to failed.

    Reports whose generation task is still running in this process are skipped.
    """
    swept = await StaleReportReconciler(session_factory, task_runner).sweep()
    return ReconcileResponse(swept_report_ids=swept, count=len(swept))


@router.get("/exams", response_model=ExamListResponse)
async def list_customer_exams(
    customer_id: str = Query(..., alias="customerId", min_length=1),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    service: ReportService = Depends(get_report_service),
) -> ExamListResponse:
    """
    List the exams a report can be built from, newest first.

    With a date range only dated exams inside the range (inclusive) are listed.
    """
    exams = await service.list_exams(customer_id, start_date=start_date, end_date=end_date)
    return ExamListResponse(
        customer_id=customer_id,
        exams=[ExamSummaryResponse.model_validate(exam) for exam in exams],
        total=len(exams),
    )


@router.get("/exams/{exam_id}", response_model=ExamDetailResponse)
async def get_customer_exam(
    exam_id: str,
    customer_id: str = Query(..., alias="customerId", min_length=1),
    service: ReportService = Depends(get_report_service),
) -> ExamDetailResponse:
    """Findings of one exam, grouped by department."""
    exam = await service.get_exam(customer_id, exam_id)
    return ExamDetailResponse.model_validate(exam)


@router.get("/{kind}/check", response_model=ReportCheckResponse)
async def check_existing_report(
    kind: ReportKind,
    customer_id: str = Query(..., alias="customerId"),
    input_ids: list[str] = Query(..., alias="inputIds"),
    service: ReportService = Depends(get_report_service),
) -> ReportCheckResponse:
    """
    Whether a report of this kind already exists for exactly these exams.

    Unlike the duplicate guard this looks at reports of any age and status.
    """
    report = await service.find_existing(kind, customer_id, input_ids)
    return ReportCheckResponse(
        has_report=report is not None,
        report=ReportSummary.model_validate(report) if report is not None else None,
    )


@router.post(
    "/{kind}/generate",
    response_model=ReportStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_report(
    kind: ReportKind,
    request: ReportGenerateRequest,
    service: ReportService = Depends(get_report_service),
) -> ReportStartedResponse:
    """
    Start generating a report and return immediately.

    The response carries the report id in the processing state; poll
    ``GET /reports/{kind}/{report_id}`` for the outcome.

    Raises:
        InvalidReportRequestError (400), UnknownCustomerError (400),
        CustomerInactiveError (403), ExamNotFoundError (404),
        DuplicateReportError (409 with the existing reportId)
    """
    report = await service.start(kind, request.customer_id, request.input_ids, wait=False)
    return ReportStartedResponse.from_report(report)


@router.post("/{kind}/generate-sync", response_model=ReportResponse)
async def generate_report_sync(
    kind: ReportKind,
    request: ReportGenerateRequest,
    service: ReportService = Depends(get_report_service),
) -> ReportResponse:
    """
    Generate a report and wait for its terminal state.

    An analysis failure is answered with status ``failed`` and the diagnostic
    text, not with an error status code.
    """
    report = await service.start(kind, request.customer_id, request.input_ids, wait=True)
    return ReportResponse.from_report(report)


@router.get("/{kind}/customer/{customer_id}", response_model=ReportListResponse)
async def list_customer_reports(
    kind: ReportKind,
    customer_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: ReportService = Depends(get_report_service),
) -> ReportListResponse:
    """List a customer's reports of one kind, newest first."""
    reports, total = await service.list_for_customer(kind, customer_id, page=page, limit=limit)
    return ReportListResponse(
        reports=[ReportSummary.model_validate(report) for report in reports],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get("/{kind}/{report_id}", response_model=ReportResponse)
async def get_report(
    kind: ReportKind,
    report_id: str,
    service: ReportService = Depends(get_report_service),
) -> ReportResponse:
    """
    Current state of a report.

    A report that is still processing is a normal 200 response.
    """
    report = await service.get(kind, report_id)
    return ReportResponse.from_report(report)


@router.get("/{kind}/{report_id}/download")
async def download_report_markdown(
    kind: ReportKind,
    report_id: str,
    service: ReportService = Depends(get_report_service),
) -> Response:
    """Download the markdown content of a completed report."""
    report = await service.get_completed(kind, report_id)
    file_name = report_file_name(kind, report.customer_name, "md")

    logger.info(f"[REPORT] Markdown download for report {report_id}")
    return Response(
        content=report.content.encode("utf-8"),
        media_type="text/markdown; charset=utf-8",
        headers=_attachment_headers(file_name),
    )


@router.post("/{kind}/{report_id}/convert-pdf", response_model=PdfConversionResponse)
async def convert_report_to_pdf(
    kind: ReportKind,
    report_id: str,
    service: ReportService = Depends(get_report_service),
) -> PdfConversionResponse:
    """
    Convert a completed report to PDF.

    The first conversion is stored on the report; later calls return the
    stored document without converting again.
    """
    result = await service.convert(kind, report_id)
    return PdfConversionResponse(
        report_id=result.report_id,
        pdf_data=base64.b64encode(result.pdf_bytes).decode("ascii"),
        file_name=result.file_name,
        cached=result.cached,
        processing_time_ms=result.processing_time_ms,
    )


@router.delete("/{kind}/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    kind: ReportKind,
    report_id: str,
    service: ReportService = Depends(get_report_service),
) -> Response:
    """Delete a report permanently."""
    await service.delete(kind, report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
