"""
Background execution of report generation.

GenerationTaskRunner owns the asyncio tasks of detached generations, and
StaleReportReconciler repairs reports whose task disappeared (for example
after a process restart) by moving them to ``failed``.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stemcare.app.core.config import settings
from stemcare.app.models.report import ACTIVE_STATUSES
from stemcare.app.services.report_store import ReportRepository
from stemcare.app.utils.time import utcnow

logger = logging.getLogger(__name__)

STALE_REPORT_MESSAGE = "Generation interrupted before completion"


class GenerationTaskRunner:
    """
    Keeps strong references to running generation tasks, keyed by report id.

    Examples:
        >>> runner = GenerationTaskRunner()
        >>> runner.spawn(report.id, worker.run)
        >>> await runner.drain(timeout=30)
    """

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    def spawn(self, report_id: str, job: Callable[[str], Awaitable]) -> asyncio.Task:
        """Start ``job(report_id)`` as a task; an already running task for the id is returned as is."""
        existing = self._tasks.get(report_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(job(report_id), name=f"report-generation-{report_id}")
        self._tasks[report_id] = task
        task.add_done_callback(lambda t: self._on_done(report_id, t))
        logger.info(f"[RUNNER] Spawned generation task for report {report_id} ({len(self._tasks)} running)")
        return task

    def _on_done(self, report_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(report_id) is task:
            del self._tasks[report_id]
        if task.cancelled():
            logger.warning(f"[RUNNER] Generation task for report {report_id} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[RUNNER] Generation task for report {report_id} raised: {exc}", exc_info=exc)

    def pending(self) -> list[str]:
        """Report ids with a task that has not finished yet."""
        return [report_id for report_id, task in self._tasks.items() if not task.done()]

    async def wait(self, report_id: str, timeout: float | None = None) -> bool:
        """
        Wait for the task of one report.

        Returns:
            True if there is no task or it finished within the timeout
        """
        task = self._tasks.get(report_id)
        if task is None:
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done)

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for all tasks; cancel the ones still running after ``timeout``.

        Cancelled workers still record a failed terminal state.
        """
        tasks = [task for task in self._tasks.values() if not task.done()]
        if not tasks:
            return

        logger.info(f"[RUNNER] Draining {len(tasks)} generation task(s)")
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"[RUNNER] Cancelled {len(still_running)} generation task(s) on shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)


class StaleReportReconciler:
    """Moves abandoned pending/processing reports to failed."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        task_runner: GenerationTaskRunner,
        stale_after_seconds: int | None = None,
    ):
        self.session_factory = session_factory
        self.task_runner = task_runner
        self.stale_after_seconds = (
            settings.stale_after_seconds if stale_after_seconds is None else stale_after_seconds
        )

    async def sweep(self) -> list[str]:
        """
        Fail every stale report this process is not working on.

        Returns:
            Ids of the reports that were moved to failed
        """
        cutoff = utcnow() - timedelta(seconds=self.stale_after_seconds)
        swept = []

        async with self.session_factory() as db:
            repo = ReportRepository(db)
            stale_reports = await repo.find_stale_processing(cutoff)
            owned = set(self.task_runner.pending())
            for report in stale_reports:
                if report.id in owned:
                    continue
                updated = await repo.mark_failed(
                    report.id,
                    STALE_REPORT_MESSAGE,
                    only_if_status=ACTIVE_STATUSES,
                )
                if updated:
                    swept.append(report.id)

        if swept:
            logger.warning(f"[RECONCILE] Marked {len(swept)} stale report(s) as failed: {swept}")
        else:
            logger.info("[RECONCILE] No stale reports found")
        return swept


# Global runner instance shared by the API and the lifespan
task_runner = GenerationTaskRunner()


def get_task_runner() -> GenerationTaskRunner:
    return task_runner
