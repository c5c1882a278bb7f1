"""
Report record store.

All reads and writes of the ``reports`` table go through ReportRepository.
Terminal transitions are plain ``UPDATE ... WHERE id = :id`` overwrites, so a
repeated write after a retry leaves the row in the same state.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from stemcare.app.core.config import settings
from stemcare.app.core.exceptions import DuplicateReportError
from stemcare.app.models.report import (
    Report,
    ReportKind,
    ReportStatus,
    normalize_input_ids,
)
from stemcare.app.utils.time import utcnow

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown error"


class ReportRepository:
    """Query and transition helpers for Report rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_processing(
        self,
        kind: ReportKind,
        customer_id: str,
        customer_name: str | None,
        input_ids: list[str],
    ) -> Report:
        """Insert a new report in the processing state and commit it."""
        now = utcnow()
        report = Report(
            kind=ReportKind(kind).value,
            customer_id=customer_id,
            customer_name=customer_name,
            input_ids=list(input_ids),
            input_ids_normalized=normalize_input_ids(input_ids),
            status=ReportStatus.PROCESSING.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(report)
        await self.db.commit()
        await self.db.refresh(report)
        logger.info(f"[REPORT] Created {report.kind} report {report.id} for customer {customer_id}")
        return report

    async def get(self, report_id: str, kind: ReportKind | None = None) -> Report | None:
        """Fetch a report; when ``kind`` is given a report of another kind is treated as absent."""
        query = (
            select(Report)
            .where(Report.id == report_id)
            .execution_options(populate_existing=True)
        )
        if kind is not None:
            query = query.where(Report.kind == ReportKind(kind).value)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_latest(
        self,
        kind: ReportKind,
        customer_id: str,
        normalized_input_ids: str,
        since: datetime | None = None,
    ) -> Report | None:
        """Newest report with the same kind, customer and normalized ids, optionally created after ``since``."""
        query = (
            select(Report)
            .options(defer(Report.content), defer(Report.artifact))
            .where(Report.kind == ReportKind(kind).value)
            .where(Report.customer_id == customer_id)
            .where(Report.input_ids_normalized == normalized_input_ids)
        )
        if since is not None:
            query = query.where(Report.created_at > since)
        result = await self.db.execute(query.order_by(Report.created_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def list_for_customer(
        self,
        kind: ReportKind,
        customer_id: str,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Report], int]:
        """
        List report summaries for a customer, newest first.

        Returns:
            Tuple of (reports on this page, total count). Content and
            artifact columns are not loaded.
        """
        kind_value = ReportKind(kind).value
        total = await self.db.scalar(
            select(func.count(Report.id))
            .where(Report.kind == kind_value)
            .where(Report.customer_id == customer_id)
        )
        result = await self.db.execute(
            select(Report)
            .options(defer(Report.content), defer(Report.artifact))
            .where(Report.kind == kind_value)
            .where(Report.customer_id == customer_id)
            .order_by(Report.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def mark_completed(
        self,
        report_id: str,
        content: str,
        model_identifier: str | None = None,
        token_count: int | None = None,
        processing_time_ms: int | None = None,
        only_if_status: tuple[ReportStatus, ...] | None = None,
    ) -> bool:
        """
        Transition a report to completed.

        Returns:
            True if a row was updated, False if the report no longer exists
            (or is not in one of ``only_if_status``)
        """
        return await self._write_terminal(
            report_id,
            status=ReportStatus.COMPLETED,
            content=content,
            error_message=None,
            model_identifier=model_identifier,
            token_count=token_count,
            processing_time_ms=processing_time_ms,
            only_if_status=only_if_status,
        )

    async def mark_failed(
        self,
        report_id: str,
        error_message: str | None,
        processing_time_ms: int | None = None,
        model_identifier: str | None = None,
        only_if_status: tuple[ReportStatus, ...] | None = None,
    ) -> bool:
        """
        Transition a report to failed.

        Args:
            report_id: Report to update
            error_message: Diagnostic text (empty becomes "Unknown error")
            processing_time_ms: Elapsed generation time
            model_identifier: Model that was asked, if known
            only_if_status: Restrict the update to rows currently in one of
                these statuses

        Returns:
            True if a row was updated
        """
        return await self._write_terminal(
            report_id,
            status=ReportStatus.FAILED,
            content=None,
            error_message=error_message or UNKNOWN_ERROR_MESSAGE,
            model_identifier=model_identifier,
            token_count=None,
            processing_time_ms=processing_time_ms,
            only_if_status=only_if_status,
        )

    async def _write_terminal(
        self,
        report_id: str,
        status: ReportStatus,
        content: str | None,
        error_message: str | None,
        model_identifier: str | None,
        token_count: int | None,
        processing_time_ms: int | None,
        only_if_status: tuple[ReportStatus, ...] | None = None,
    ) -> bool:
        statement = (
            update(Report)
            .where(Report.id == report_id)
            .values(
                status=status.value,
                content=content,
                error_message=error_message,
                artifact=None,
                model_identifier=model_identifier,
                token_count=token_count,
                processing_time_ms=processing_time_ms,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if only_if_status:
            statement = statement.where(Report.status.in_([s.value for s in only_if_status]))
        result = await self.db.execute(statement)
        await self.db.commit()
        return result.rowcount > 0

    async def store_artifact(self, report: Report, artifact: bytes) -> None:
        """Cache the converted document on a completed report."""
        report.artifact = artifact
        report.updated_at = utcnow()
        await self.db.commit()
        logger.info(f"[REPORT] Cached artifact for report {report.id} ({len(artifact)} bytes)")

    async def delete(self, report_id: str, kind: ReportKind | None = None) -> bool:
        """Hard-delete a report. Returns False when nothing matched."""
        statement = delete(Report).where(Report.id == report_id)
        if kind is not None:
            statement = statement.where(Report.kind == ReportKind(kind).value)
        result = await self.db.execute(statement.execution_options(synchronize_session=False))
        await self.db.commit()
        return result.rowcount > 0

    async def find_stale_processing(self, older_than: datetime) -> list[Report]:
        """Reports still pending or processing whose last transition is before ``older_than``."""
        result = await self.db.execute(
            select(Report)
            .options(defer(Report.content), defer(Report.artifact))
            .where(Report.status.in_([ReportStatus.PENDING.value, ReportStatus.PROCESSING.value]))
            .where(Report.updated_at < older_than)
            .order_by(Report.updated_at)
        )
        return list(result.scalars().all())


class DuplicateReportGuard:
    """
    Suppresses identical submissions within a time window.

    The lookup is read-only and not atomic against a concurrent insert of the
    same combination; two simultaneous requests may both pass.
    """

    def __init__(self, window_seconds: int | None = None):
        self.window_seconds = settings.duplicate_window_seconds if window_seconds is None else window_seconds

    async def find_existing(
        self,
        db: AsyncSession,
        kind: ReportKind,
        customer_id: str,
        input_ids: list[str],
    ) -> Report | None:
        since = utcnow() - timedelta(seconds=self.window_seconds)
        return await ReportRepository(db).find_latest(
            kind, customer_id, normalize_input_ids(input_ids), since
        )

    async def check(
        self,
        db: AsyncSession,
        kind: ReportKind,
        customer_id: str,
        input_ids: list[str],
    ) -> None:
        """
        Raises:
            DuplicateReportError: If an identical report exists inside the window
        """
        existing = await self.find_existing(db, kind, customer_id, input_ids)
        if existing is not None:
            logger.info(
                f"[REPORT] Duplicate {ReportKind(kind).value} request for customer {customer_id}, "
                f"existing report {existing.id} ({existing.status})"
            )
            raise DuplicateReportError(existing.id, existing.status)
