"""
Client-side polling of a report until it reaches a terminal status.

Mirrors what the admin frontend does after a fire-and-poll request: wait a
moment, poll every ``interval`` seconds, and give up after ``timeout``
seconds with a "still processing" outcome instead of an error.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from stemcare.app.models.report import ReportKind, ReportStatus

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    """Result of polling one report."""

    report_id: str
    status: str
    report: dict[str, Any] | None
    attempts: int
    timed_out: bool = False

    @property
    def finished(self) -> bool:
        return ReportStatus(self.status).is_terminal


class ReportPoller:
    """Polls ``GET {base_path}/{kind}/{id}`` with an httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        interval: float = 10.0,
        timeout: float = 600.0,
        initial_delay: float = 2.0,
        base_path: str = "/api/reports",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Client pointed at the API server
            interval: Seconds between polls
            timeout: Total seconds before giving up
            initial_delay: Seconds before the first poll
            base_path: Path prefix of the report routes
            sleep: Awaitable sleep (replaceable in tests)
            clock: Monotonic clock (replaceable in tests)
        """
        self.client = client
        self.interval = interval
        self.timeout = timeout
        self.initial_delay = initial_delay
        self.base_path = base_path.rstrip("/")
        self._sleep = sleep
        self._clock = clock

    async def poll(self, kind: ReportKind | str, report_id: str) -> PollOutcome:
        """
        Poll until the report is completed or failed.

        Returns:
            PollOutcome; ``timed_out=True`` with status ``processing`` when
            the timeout elapsed first

        Raises:
            httpx.HTTPStatusError: If the server answers with an error (e.g. 404)
        """
        url = f"{self.base_path}/{ReportKind(kind).value}/{report_id}"
        deadline = self._clock() + self.timeout
        attempts = 0
        last_report: dict[str, Any] | None = None

        await self._sleep(self.initial_delay)

        while True:
            attempts += 1
            response = await self.client.get(url)
            response.raise_for_status()
            last_report = response.json()
            status = last_report.get("status", ReportStatus.PROCESSING.value)

            if ReportStatus(status).is_terminal:
                logger.info(f"[POLL] Report {report_id} is {status} after {attempts} poll(s)")
                return PollOutcome(report_id=report_id, status=status, report=last_report, attempts=attempts)

            if self._clock() + self.interval > deadline:
                logger.info(f"[POLL] Report {report_id} still processing after {self.timeout}s, check back later")
                return PollOutcome(
                    report_id=report_id,
                    status=ReportStatus.PROCESSING.value,
                    report=last_report,
                    attempts=attempts,
                    timed_out=True,
                )

            await self._sleep(self.interval)
