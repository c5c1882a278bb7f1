"""
Report lifecycle orchestration used by the API layer.

Creation validates the request, checks the owning customer and the exam
ids, applies the duplicate guard, inserts a ``processing`` row and then
either hands the id to the task runner or runs the worker inline.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stemcare.app.core.config import settings
from stemcare.app.core.exceptions import (
    AnalysisServiceError,
    DocumentConversionError,
    ExamNotFoundError,
    InvalidReportRequestError,
    ReportNotFoundError,
    ReportNotReadyError,
    UnknownCustomerError,
)
from stemcare.app.models.report import INPUT_ID_DELIMITER, Report, ReportKind, ReportStatus, normalize_input_ids
from stemcare.app.services.content_store import ExamContentStore, ExamRecord, ExamSummary
from stemcare.app.services.customer_directory import CustomerDirectory
from stemcare.app.services.llm import AnalysisService
from stemcare.app.services.pdf_generator import HttpPDFConverter, PDFGenerator
from stemcare.app.services.report_generator import get_profile, report_file_name
from stemcare.app.services.report_store import DuplicateReportGuard, ReportRepository
from stemcare.app.services.report_worker import ReportGenerationWorker
from stemcare.app.services.system_settings import SystemSettingsCache
from stemcare.app.services.task_runner import GenerationTaskRunner

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """PDF bytes of a report plus how they were obtained."""

    report_id: str
    pdf_bytes: bytes
    file_name: str
    cached: bool
    processing_time_ms: int


def validate_input_ids(kind: ReportKind, input_ids: list[str] | None) -> list[str]:
    """
    Check the input ids of a request against the bounds of its kind.

    Raises:
        InvalidReportRequestError: On a missing, empty, duplicate-containing
            or out-of-bounds list
    """
    profile = get_profile(kind)
    if not input_ids:
        raise InvalidReportRequestError("inputIds must be a non-empty list")

    cleaned = []
    for input_id in input_ids:
        if not isinstance(input_id, str) or not input_id.strip():
            raise InvalidReportRequestError("inputIds must contain non-empty strings")
        if INPUT_ID_DELIMITER in input_id:
            raise InvalidReportRequestError(f"inputIds must not contain '{INPUT_ID_DELIMITER}'")
        cleaned.append(input_id.strip())

    if len(set(cleaned)) != len(cleaned):
        raise InvalidReportRequestError("inputIds must not contain duplicates")

    if not profile.min_inputs <= len(cleaned) <= profile.max_inputs:
        if profile.min_inputs == profile.max_inputs:
            expected = f"exactly {profile.min_inputs}"
        else:
            expected = f"between {profile.min_inputs} and {profile.max_inputs}"
        raise InvalidReportRequestError(
            f"A {profile.kind.value} report needs {expected} input ids, got {len(cleaned)}"
        )
    return cleaned


class ReportService:
    """Entry points for creating, reading, converting and deleting reports."""

    def __init__(
        self,
        db: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        analysis_service: AnalysisService,
        converter: PDFGenerator | HttpPDFConverter,
        task_runner: GenerationTaskRunner,
        system_settings: SystemSettingsCache | None = None,
        guard: DuplicateReportGuard | None = None,
    ):
        self.db = db
        self.repo = ReportRepository(db)
        self.session_factory = session_factory
        self.analysis_service = analysis_service
        self.converter = converter
        self.task_runner = task_runner
        self.system_settings = system_settings
        self.guard = guard or DuplicateReportGuard()

    def _worker(self) -> ReportGenerationWorker:
        return ReportGenerationWorker(
            self.session_factory,
            self.analysis_service,
            system_settings=self.system_settings,
        )

    async def start(
        self,
        kind: ReportKind,
        customer_id: str | None,
        input_ids: list[str] | None,
        wait: bool = False,
    ) -> Report:
        """
        Create a report and start its generation.

        Args:
            kind: Report kind
            customer_id: Owning customer
            input_ids: Source exam ids in submission order
            wait: Run the generation inline and return the terminal state

        Returns:
            The report (processing when ``wait`` is False, terminal otherwise)

        Raises:
            InvalidReportRequestError: Missing customer id or invalid input ids
            UnknownCustomerError / CustomerInactiveError: Owning customer check failed
            ExamNotFoundError: An input id has no data for this customer
            DuplicateReportError: Identical report inside the suppression window
            AnalysisServiceError: The analysis service is not configured
        """
        kind = ReportKind(kind)
        if not customer_id or not customer_id.strip():
            raise InvalidReportRequestError("customerId is required")
        customer_id = customer_id.strip()
        input_ids = validate_input_ids(kind, input_ids)

        customer = await CustomerDirectory(self.db).require_active(customer_id)

        missing = await ExamContentStore(self.db).find_missing(customer_id, input_ids)
        if missing:
            raise ExamNotFoundError(missing[0], customer_id)

        await self.guard.check(self.db, kind, customer_id, input_ids)

        if not self.analysis_service.is_configured:
            raise AnalysisServiceError("configuration", ValueError("DEEPSEEK_API_KEY not set in environment"))

        report = await self.repo.create_processing(kind, customer_id, customer.name, input_ids)
        logger.info(
            f"[REPORT] Started {kind.value} report {report.id} for {customer.name} "
            f"with {len(input_ids)} exam(s), wait={wait}"
        )

        task = self.task_runner.spawn(report.id, self._worker().run)
        if not wait:
            return report

        # A disconnecting client cancels the request, not the generation
        await asyncio.shield(task)
        return await self.get(kind, report.id)

    async def get(self, kind: ReportKind, report_id: str) -> Report:
        """
        Raises:
            ReportNotFoundError: Unknown id or report of another kind
        """
        report = await self.repo.get(report_id, kind)
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    async def list_for_customer(
        self,
        kind: ReportKind,
        customer_id: str,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Report], int]:
        return await self.repo.list_for_customer(kind, customer_id, page=page, limit=limit)

    async def find_existing(
        self,
        kind: ReportKind,
        customer_id: str | None,
        input_ids: list[str] | None,
    ) -> Report | None:
        """
        Newest report of any age and status built from exactly these exams.

        Raises:
            InvalidReportRequestError: Missing customer id or invalid input ids
        """
        kind = ReportKind(kind)
        if not customer_id or not customer_id.strip():
            raise InvalidReportRequestError("customerId is required")
        input_ids = validate_input_ids(kind, input_ids)
        return await self.repo.find_latest(kind, customer_id.strip(), normalize_input_ids(input_ids))

    async def list_exams(
        self,
        customer_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[ExamSummary]:
        """
        Exams of a customer that can be selected as report inputs.

        Raises:
            InvalidReportRequestError: startDate after endDate
            UnknownCustomerError: If no customer has this id
        """
        if start_date and end_date and start_date > end_date:
            raise InvalidReportRequestError("startDate must not be after endDate")
        if not await CustomerDirectory(self.db).customer_exists(customer_id):
            raise UnknownCustomerError(customer_id)
        return await ExamContentStore(self.db).list_exams(customer_id, start_date, end_date)

    async def get_exam(self, customer_id: str, exam_id: str) -> ExamRecord:
        """
        Raises:
            UnknownCustomerError: If no customer has this id
            ExamNotFoundError: If the exam has no data for this customer
        """
        if not await CustomerDirectory(self.db).customer_exists(customer_id):
            raise UnknownCustomerError(customer_id)
        return await ExamContentStore(self.db).load_exam(customer_id, exam_id)

    async def delete(self, kind: ReportKind, report_id: str) -> None:
        """
        Raises:
            ReportNotFoundError: Nothing to delete
        """
        if not await self.repo.delete(report_id, kind):
            raise ReportNotFoundError(report_id)
        logger.info(f"[REPORT] Deleted {ReportKind(kind).value} report {report_id}")

    async def get_completed(self, kind: ReportKind, report_id: str) -> Report:
        """
        Raises:
            ReportNotFoundError: Unknown id
            ReportNotReadyError: Report has not completed or has no content
        """
        report = await self.get(kind, report_id)
        if report.report_status != ReportStatus.COMPLETED or not report.content:
            raise ReportNotReadyError(report.id, report.status)
        return report

    async def convert(self, kind: ReportKind, report_id: str) -> ConversionResult:
        """
        Return the PDF of a completed report, converting and caching it on first use.

        Raises:
            ReportNotFoundError: Unknown id
            ReportNotReadyError: Report has not completed
            DocumentConversionError: Converter unavailable or failing
        """
        started = time.monotonic()
        report = await self.get_completed(kind, report_id)
        file_name = report_file_name(kind, report.customer_name, "pdf")

        if report.artifact:
            logger.info(f"[PDF] Serving cached PDF for report {report.id}")
            return ConversionResult(
                report_id=report.id,
                pdf_bytes=report.artifact,
                file_name=file_name,
                cached=True,
                processing_time_ms=int((time.monotonic() - started) * 1000),
            )

        pdf_bytes = await self._convert_with_retry(report.content)
        await self.repo.store_artifact(report, pdf_bytes)

        return ConversionResult(
            report_id=report.id,
            pdf_bytes=pdf_bytes,
            file_name=file_name,
            cached=False,
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )

    async def _convert_with_retry(self, content: str) -> bytes:
        if not await self.converter.is_available():
            raise DocumentConversionError(
                "availability check",
                RuntimeError("conversion service is not reachable"),
                transient=True,
            )

        attempts = settings.pdf_convert_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.converter.convert(content)
            except DocumentConversionError as e:
                if not e.transient or attempt >= attempts:
                    logger.error(f"[PDF] Conversion failed after {attempt} attempt(s): {e.message}")
                    raise
                logger.warning(f"[PDF] Transient conversion failure on attempt {attempt}/{attempts}: {e.message}")
        raise DocumentConversionError("conversion")
