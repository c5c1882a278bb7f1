"""
Report generation worker.

Runs one generation for one report: assemble the exam content, call the
analysis service once and write exactly one terminal state. The terminal
write sits in a ``finally`` block so that a report never stays in
``processing`` because of an exception or a task cancellation.
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stemcare.app.core.exceptions import (
    ReportNotFoundError,
    StemCareException,
    StorageError,
)
from stemcare.app.models.report import ACTIVE_STATUSES, ReportStatus
from stemcare.app.services.content_store import ExamContentStore
from stemcare.app.services.llm import AnalysisService
from stemcare.app.services.report_generator import build_prompt, render_markdown
from stemcare.app.services.report_store import ReportRepository
from stemcare.app.services.system_settings import DEFAULT_SYSTEM_SETTINGS, SystemSettingsCache

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Generation was cancelled before completion"


@dataclass
class GenerationOutcome:
    """Terminal state produced by one worker run."""

    status: ReportStatus
    content: str | None = None
    error_message: str | None = None
    model_identifier: str | None = None
    token_count: int | None = None

    @classmethod
    def failed(cls, error_message: str) -> "GenerationOutcome":
        return cls(status=ReportStatus.FAILED, error_message=error_message)


class ReportGenerationWorker:
    """Generates the content of one report and records the outcome."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        analysis_service: AnalysisService,
        system_settings: SystemSettingsCache | None = None,
    ):
        """
        Args:
            session_factory: Factory for the worker's own database sessions
            analysis_service: External analysis service
            system_settings: Cache providing the system name for the footer
        """
        self.session_factory = session_factory
        self.analysis_service = analysis_service
        self.system_settings = system_settings

    async def run(self, report_id: str) -> ReportStatus:
        """
        Generate the report and persist its terminal state.

        Returns:
            The terminal status that was written

        Raises:
            StorageError: If the terminal write itself failed
        """
        logger.info(f"[WORKER] Starting generation for report {report_id}")
        started = time.monotonic()
        outcome: GenerationOutcome | None = None

        try:
            outcome = await self._generate(report_id)
        except StemCareException as e:
            logger.warning(f"[WORKER] Generation failed for report {report_id}: {e.message}")
            outcome = GenerationOutcome.failed(e.message)
        except Exception as e:
            logger.exception(f"[WORKER] Unexpected error while generating report {report_id}")
            outcome = GenerationOutcome.failed(f"Unexpected error during generation: {e}")
        finally:
            if outcome is None:
                logger.warning(f"[WORKER] Generation for report {report_id} was cancelled")
                outcome = GenerationOutcome.failed(INTERRUPTED_MESSAGE)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            await self._write_terminal(report_id, outcome, elapsed_ms)

        return outcome.status

    async def _generate(self, report_id: str) -> GenerationOutcome:
        # The session is closed before the analysis call so that no pool
        # connection is held while waiting on the external service.
        async with self.session_factory() as db:
            report = await ReportRepository(db).get(report_id)
            if report is None:
                raise ReportNotFoundError(report_id)
            kind = report.report_kind
            customer_name = report.customer_name
            store = ExamContentStore(db)
            input_ids = list(report.input_ids)
            exam_content = await store.get_input_content(report.customer_id, input_ids)
            # Served from the store's memo, no second round of queries
            exams = await store.load_exams(report.customer_id, input_ids)

        system_prompt, prompt = build_prompt(kind, customer_name, exam_content, exam_count=len(exams))
        result = await self.analysis_service.analyze(prompt, system_prompt=system_prompt)

        content = render_markdown(
            kind,
            customer_name,
            exams,
            result.content,
            system_name=await self._system_name(),
        )
        return GenerationOutcome(
            status=ReportStatus.COMPLETED,
            content=content,
            model_identifier=result.model_identifier,
            token_count=result.token_count,
        )

    async def _system_name(self) -> str:
        if self.system_settings is None:
            return DEFAULT_SYSTEM_SETTINGS["systemName"]
        return await self.system_settings.get_value("systemName", DEFAULT_SYSTEM_SETTINGS["systemName"])

    async def _write_terminal(self, report_id: str, outcome: GenerationOutcome, elapsed_ms: int) -> None:
        try:
            async with self.session_factory() as db:
                repo = ReportRepository(db)
                if outcome.status == ReportStatus.COMPLETED:
                    updated = await repo.mark_completed(
                        report_id,
                        outcome.content,
                        model_identifier=outcome.model_identifier,
                        token_count=outcome.token_count,
                        processing_time_ms=elapsed_ms,
                        only_if_status=ACTIVE_STATUSES,
                    )
                else:
                    updated = await repo.mark_failed(
                        report_id,
                        outcome.error_message,
                        processing_time_ms=elapsed_ms,
                        only_if_status=ACTIVE_STATUSES,
                    )
        except SQLAlchemyError as e:
            logger.error(f"[WORKER] Could not record terminal state for report {report_id}: {e}")
            raise StorageError("terminal report update", e) from e

        if not updated:
            logger.warning(
                f"[WORKER] Report {report_id} was deleted or already finalized elsewhere, "
                f"{outcome.status.value} outcome discarded"
            )
            return
        logger.info(
            f"[WORKER] Report {report_id} -> {outcome.status.value} in {elapsed_ms}ms"
            + (f" ({outcome.error_message})" if outcome.error_message else "")
        )
