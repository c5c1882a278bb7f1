"""Unit tests for the report record store and the duplicate guard."""

from datetime import timedelta

import pytest

from stemcare.app.core.exceptions import DuplicateReportError
from stemcare.app.models.report import ReportKind, ReportStatus, normalize_input_ids
from stemcare.app.services.report_store import DuplicateReportGuard, ReportRepository
from stemcare.app.utils.time import utcnow


class TestNormalizeInputIds:
    """Test cases for normalize_input_ids."""

    def test_order_independent(self):
        """Test the same set of ids normalizes to the same string."""
        assert normalize_input_ids(["E2", "E1"]) == normalize_input_ids(["E1", "E2"]) == "E1,E2"

    def test_single_id(self):
        assert normalize_input_ids(["E1"]) == "E1"


class TestReportStatus:
    """Test cases for the status enum."""

    def test_terminal_statuses(self):
        assert ReportStatus.COMPLETED.is_terminal
        assert ReportStatus.FAILED.is_terminal
        assert not ReportStatus.PROCESSING.is_terminal
        assert not ReportStatus.PENDING.is_terminal

    def test_labels(self):
        """Test every status has a display label."""
        assert ReportStatus.PROCESSING.label == "生成中"
        assert ReportStatus.COMPLETED.label == "已完成"
        assert ReportStatus.FAILED.label == "生成失败"
        assert ReportStatus.PENDING.label == "待处理"


class TestReportRepository:
    """Test cases for ReportRepository."""

    @pytest.mark.asyncio
    async def test_create_processing(self, test_db, seeded_customer):
        """Test a new report starts in processing with normalized ids."""
        repo = ReportRepository(test_db)

        report = await repo.create_processing(
            ReportKind.COMPARISON, seeded_customer["customer_id"], "张三", ["E2", "E1"]
        )

        assert report.id
        assert report.status == ReportStatus.PROCESSING.value
        assert report.input_ids == ["E2", "E1"]
        assert report.input_ids_normalized == "E1,E2"
        assert report.content is None
        assert report.error_message is None

    @pytest.mark.asyncio
    async def test_get_with_kind_mismatch(self, test_db, seeded_customer):
        """Test a report of another kind is treated as absent."""
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )

        assert await repo.get(report.id, ReportKind.HEALTH_ASSESSMENT) is not None
        assert await repo.get(report.id, ReportKind.COMPARISON) is None
        assert await repo.get("missing-id") is None

    @pytest.mark.asyncio
    async def test_mark_completed_sets_content_only(self, test_db, seeded_customer):
        """Test completed reports carry content and no error message."""
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )

        updated = await repo.mark_completed(
            report.id, "# 报告", model_identifier="deepseek-chat", token_count=99, processing_time_ms=1200
        )
        stored = await repo.get(report.id)

        assert updated is True
        assert stored.status == ReportStatus.COMPLETED.value
        assert stored.content == "# 报告"
        assert stored.error_message is None
        assert stored.token_count == 99
        assert stored.processing_time_ms == 1200

    @pytest.mark.asyncio
    async def test_mark_failed_clears_content_and_artifact(self, test_db, seeded_customer):
        """Test a failed overwrite removes earlier content and the cached artifact."""
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )
        await repo.mark_completed(report.id, "# 报告")
        await repo.store_artifact(await repo.get(report.id), b"%PDF")

        await repo.mark_failed(report.id, "Upstream exploded")
        stored = await repo.get(report.id)

        assert stored.status == ReportStatus.FAILED.value
        assert stored.content is None
        assert stored.artifact is None
        assert stored.error_message == "Upstream exploded"

    @pytest.mark.asyncio
    async def test_mark_failed_empty_message(self, test_db, seeded_customer):
        """Test an empty diagnostic becomes a generic message."""
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )

        await repo.mark_failed(report.id, "")
        stored = await repo.get(report.id)

        assert stored.error_message == "Unknown error"

    @pytest.mark.asyncio
    async def test_terminal_write_is_idempotent(self, test_db, seeded_customer):
        """Test repeating the same terminal write leaves the same state."""
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )

        assert await repo.mark_failed(report.id, "boom", processing_time_ms=5)
        assert await repo.mark_failed(report.id, "boom", processing_time_ms=5)
        stored = await repo.get(report.id)

        assert stored.status == ReportStatus.FAILED.value
        assert stored.error_message == "boom"

    @pytest.mark.asyncio
    async def test_terminal_write_on_missing_report(self, test_db):
        assert await ReportRepository(test_db).mark_completed("missing-id", "# 报告") is False

    @pytest.mark.asyncio
    async def test_mark_failed_only_if_status(self, test_db, seeded_customer):
        """Test a conditional failure does not overwrite a completed report."""
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )
        await repo.mark_completed(report.id, "# 报告")

        updated = await repo.mark_failed(
            report.id, "stale", only_if_status=(ReportStatus.PROCESSING,)
        )
        stored = await repo.get(report.id)

        assert updated is False
        assert stored.status == ReportStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_list_for_customer_pagination(self, test_db, seeded_customer):
        """Test listing is newest first and paginated."""
        repo = ReportRepository(test_db)
        customer_id = seeded_customer["customer_id"]
        created = []
        for input_id in ["E1", "E2", "E3"]:
            created.append(
                await repo.create_processing(ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", [input_id])
            )
        await repo.create_processing(ReportKind.COMPARISON, customer_id, "张三", ["E1", "E2"])

        first_page, total = await repo.list_for_customer(ReportKind.HEALTH_ASSESSMENT, customer_id, page=1, limit=2)
        second_page, _ = await repo.list_for_customer(ReportKind.HEALTH_ASSESSMENT, customer_id, page=2, limit=2)

        assert total == 3
        assert len(first_page) == 2
        assert len(second_page) == 1
        listed = {report.id for report in first_page + second_page}
        assert listed == {report.id for report in created}

    @pytest.mark.asyncio
    async def test_delete(self, test_db, seeded_customer):
        repo = ReportRepository(test_db)
        report = await repo.create_processing(
            ReportKind.HEALTH_ASSESSMENT, seeded_customer["customer_id"], "张三", ["E1"]
        )

        assert await repo.delete(report.id, ReportKind.COMPARISON) is False
        assert await repo.delete(report.id, ReportKind.HEALTH_ASSESSMENT) is True
        assert await repo.get(report.id) is None

    @pytest.mark.asyncio
    async def test_find_stale_processing(self, test_db, seeded_customer):
        """Test only old non-terminal reports are stale."""
        repo = ReportRepository(test_db)
        customer_id = seeded_customer["customer_id"]
        old = await repo.create_processing(ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", ["E1"])
        fresh = await repo.create_processing(ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", ["E2"])
        done = await repo.create_processing(ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", ["E3"])
        await repo.mark_completed(done.id, "# 报告")

        old.updated_at = utcnow() - timedelta(hours=1)
        await test_db.commit()

        stale = await repo.find_stale_processing(utcnow() - timedelta(minutes=15))

        assert [report.id for report in stale] == [old.id]
        assert fresh.id not in [report.id for report in stale]


class TestDuplicateReportGuard:
    """Test cases for DuplicateReportGuard."""

    @pytest.mark.asyncio
    async def test_reordered_ids_are_duplicates(self, test_db, seeded_customer):
        """Test the guard matches the same id set in a different order."""
        customer_id = seeded_customer["customer_id"]
        existing = await ReportRepository(test_db).create_processing(
            ReportKind.COMPARISON, customer_id, "张三", ["E1", "E2"]
        )
        guard = DuplicateReportGuard(window_seconds=300)

        with pytest.raises(DuplicateReportError) as exc_info:
            await guard.check(test_db, ReportKind.COMPARISON, customer_id, ["E2", "E1"])

        assert exc_info.value.report_id == existing.id
        assert exc_info.value.status == ReportStatus.PROCESSING.value
        assert exc_info.value.extra_fields() == {"reportId": existing.id, "status": "processing"}

    @pytest.mark.asyncio
    async def test_matches_terminal_reports_too(self, test_db, seeded_customer):
        """Test a recently failed report also suppresses resubmission."""
        customer_id = seeded_customer["customer_id"]
        repo = ReportRepository(test_db)
        existing = await repo.create_processing(ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", ["E1"])
        await repo.mark_failed(existing.id, "boom")

        found = await DuplicateReportGuard(window_seconds=300).find_existing(
            test_db, ReportKind.HEALTH_ASSESSMENT, customer_id, ["E1"]
        )

        assert found is not None
        assert found.id == existing.id

    @pytest.mark.asyncio
    async def test_other_kind_or_ids_not_duplicate(self, test_db, seeded_customer):
        customer_id = seeded_customer["customer_id"]
        await ReportRepository(test_db).create_processing(ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", ["E1"])
        guard = DuplicateReportGuard(window_seconds=300)

        await guard.check(test_db, ReportKind.HEALTH_ASSESSMENT, customer_id, ["E2"])
        await guard.check(test_db, ReportKind.COMPARISON, customer_id, ["E1", "E2"])

    @pytest.mark.asyncio
    async def test_outside_window_not_duplicate(self, test_db, seeded_customer):
        """Test reports older than the window no longer block a new request."""
        customer_id = seeded_customer["customer_id"]
        report = await ReportRepository(test_db).create_processing(
            ReportKind.HEALTH_ASSESSMENT, customer_id, "张三", ["E1"]
        )
        report.created_at = utcnow() - timedelta(minutes=10)
        await test_db.commit()

        await DuplicateReportGuard(window_seconds=300).check(
            test_db, ReportKind.HEALTH_ASSESSMENT, customer_id, ["E1"]
        )
