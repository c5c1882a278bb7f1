"""Unit tests for the client-side report poller."""

import httpx
import pytest

from stemcare.app.services.report_poller import ReportPoller


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _client(statuses: list[str], requests: list[httpx.Request]) -> httpx.AsyncClient:
    """Client whose successive GETs answer with the given statuses (the last one repeats)."""
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status = statuses[min(len(requests), len(statuses)) - 1]
        return httpx.Response(200, json={"reportId": "r1", "status": status})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


class TestReportPoller:
    """Test cases for ReportPoller.poll."""

    @pytest.mark.asyncio
    async def test_stops_on_completed(self):
        """Test polling stops at the first terminal status."""
        clock = FakeClock()
        requests = []
        async with _client(["processing", "processing", "completed"], requests) as client:
            poller = ReportPoller(client, interval=10, timeout=600, initial_delay=2, sleep=clock.sleep, clock=clock)
            outcome = await poller.poll("health-assessment", "r1")

        assert outcome.status == "completed"
        assert outcome.finished is True
        assert outcome.timed_out is False
        assert outcome.attempts == 3
        assert clock.sleeps == [2, 10, 10]
        assert requests[0].url.path == "/api/reports/health-assessment/r1"

    @pytest.mark.asyncio
    async def test_failed_is_terminal(self):
        clock = FakeClock()
        async with _client(["failed"], []) as client:
            outcome = await ReportPoller(client, sleep=clock.sleep, clock=clock).poll("comparison", "r1")

        assert outcome.status == "failed"
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_timeout_returns_still_processing(self):
        """Test the timeout yields a still-processing outcome instead of an error."""
        clock = FakeClock()
        requests = []
        async with _client(["processing"], requests) as client:
            poller = ReportPoller(client, interval=10, timeout=60, initial_delay=0, sleep=clock.sleep, clock=clock)
            outcome = await poller.poll("health-assessment", "r1")

        assert outcome.timed_out is True
        assert outcome.status == "processing"
        assert outcome.finished is False
        assert outcome.attempts == len(requests)
        assert clock.now <= 60

    @pytest.mark.asyncio
    async def test_not_found_raises(self):
        """Test an unknown report surfaces the HTTP error."""
        clock = FakeClock()
        transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"detail": "Report not found"}))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            with pytest.raises(httpx.HTTPStatusError):
                await ReportPoller(client, sleep=clock.sleep, clock=clock).poll("health-assessment", "missing")
