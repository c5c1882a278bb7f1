"""Unit tests for exam content assembly, prompts and markdown rendering."""

from datetime import date, datetime

import pytest

from stemcare.app.core.exceptions import ExamNotFoundError
from stemcare.app.models.report import ReportKind
from stemcare.app.services.content_store import DepartmentFindings, ExamContentStore, ExamRecord, render_exams
from stemcare.app.services.report_generator import (
    build_prompt,
    get_profile,
    render_markdown,
    report_file_name,
)


def _exam(exam_id: str, exam_date: str | None) -> ExamRecord:
    return ExamRecord(
        exam_id=exam_id,
        exam_date=exam_date,
        departments=[DepartmentFindings(department="内科", lines=["血压：120/80 mmHg"], summary="正常")],
    )


class TestExamContentStore:
    """Test cases for ExamContentStore."""

    @pytest.mark.asyncio
    async def test_input_content(self, test_db, seeded_customer):
        """Test department findings and grouped laboratory results are rendered."""
        content = await ExamContentStore(test_db).get_input_content(seeded_customer["customer_id"], ["E1"])

        assert "### 第1次体检 (ID: E1)" in content
        assert "体检日期：2023-06-01" in content
        assert "#### 1. 内科" in content
        assert "检查医生：王医生" in content
        assert "心率：72 次/分" in content
        assert "#### 2. 检验科" in content
        assert "生化：" in content
        assert "[异常]" in content

    @pytest.mark.asyncio
    async def test_free_text_assessment(self, test_db, seeded_customer):
        """Test non-JSON department data is passed through as text."""
        content = await ExamContentStore(test_db).get_input_content(seeded_customer["customer_id"], ["E2"])

        assert "心肺未见异常" in content

    @pytest.mark.asyncio
    async def test_laboratory_only_exam(self, test_db, seeded_customer):
        content = await ExamContentStore(test_db).get_input_content(seeded_customer["customer_id"], ["E3"])

        assert "体检日期：未知" in content
        assert "白细胞计数: 5.6 10^9/L (参考值: 3.5-9.5)" in content
        assert "[异常]" not in content

    @pytest.mark.asyncio
    async def test_find_missing(self, test_db, seeded_customer):
        store = ExamContentStore(test_db)

        assert await store.find_missing(seeded_customer["customer_id"], ["E1", "E3", "E9"]) == ["E9"]
        # Exams belong to their customer only
        assert await store.find_missing(seeded_customer["inactive_customer_id"], ["E1"]) == ["E1"]

    @pytest.mark.asyncio
    async def test_unknown_exam_raises(self, test_db, seeded_customer):
        with pytest.raises(ExamNotFoundError, match="E9"):
            await ExamContentStore(test_db).get_input_content(seeded_customer["customer_id"], ["E9"])

    @pytest.mark.asyncio
    async def test_loaded_exams_are_reused(self, test_db, seeded_customer):
        """Test a store instance loads each exam once."""
        store = ExamContentStore(test_db)
        content = await store.get_input_content(seeded_customer["customer_id"], ["E1"])
        first = await store.load_exam(seeded_customer["customer_id"], "E1")
        second = await store.load_exam(seeded_customer["customer_id"], "E1")

        assert first is second
        assert render_exams([first]) == content

    @pytest.mark.asyncio
    async def test_list_exams(self, test_db, seeded_customer):
        """Test exams are listed newest first with their department counts."""
        exams = await ExamContentStore(test_db).list_exams(seeded_customer["customer_id"])

        assert [exam.exam_id for exam in exams] == ["E2", "E1", "E3"]
        assert exams[0].exam_date == "2024-06-01"
        assert exams[1].department_count == 2
        assert exams[1].has_laboratory is True
        assert exams[2].exam_date is None

    @pytest.mark.asyncio
    async def test_list_exams_date_range(self, test_db, seeded_customer):
        """Test the date range is inclusive and drops undated exams."""
        store = ExamContentStore(test_db)
        customer_id = seeded_customer["customer_id"]

        in_2023 = await store.list_exams(customer_id, start_date=date(2023, 1, 1), end_date=date(2023, 6, 1))
        from_2024 = await store.list_exams(customer_id, start_date=date(2024, 1, 1))

        assert [exam.exam_id for exam in in_2023] == ["E1"]
        assert [exam.exam_id for exam in from_2024] == ["E2"]
        assert await store.list_exams(seeded_customer["inactive_customer_id"]) == []


class TestPrompts:
    """Test cases for prompt building."""

    def test_health_assessment_prompt(self):
        system_prompt, prompt = build_prompt(
            ReportKind.HEALTH_ASSESSMENT, "张三", render_exams([_exam("E1", "2024-01-01")]), exam_count=1
        )

        assert "健康评估" in system_prompt
        assert "**客户姓名**：张三" in prompt
        assert "(ID: E1)" in prompt
        assert "6. 生活方式指导" in prompt

    def test_comparison_prompt(self):
        exams = [_exam("E1", "2023-01-01"), _exam("E2", "2024-01-01")]
        system_prompt, prompt = build_prompt(ReportKind.COMPARISON, "张三", render_exams(exams), exam_count=len(exams))

        assert "对比分析" in system_prompt
        assert "**对比体检次数**：2" in prompt
        assert "表格" in prompt

    def test_input_bounds(self):
        assert get_profile(ReportKind.HEALTH_ASSESSMENT).max_inputs == 1
        assert get_profile("comparison").min_inputs == 2
        assert get_profile("comparison").max_inputs == 3


class TestRenderMarkdown:
    """Test cases for the final report document."""

    def test_health_assessment_document(self):
        markdown = render_markdown(
            ReportKind.HEALTH_ASSESSMENT,
            "张三",
            [_exam("E1", "2024-01-01")],
            "## 总体评估\n良好",
            system_name="测试系统",
            generated_at=datetime(2024, 5, 1, 9, 30),
        )

        assert markdown.startswith("# 张三 - 健康评估报告\n")
        assert "- **体检ID**: E1" in markdown
        assert "- **报告生成时间**: 2024/05/01 09:30:00" in markdown
        assert "## AI健康评估分析\n\n## 总体评估\n良好" in markdown
        assert "*测试系统 · Powered by DeepSeek AI*" in markdown

    def test_comparison_document(self):
        markdown = render_markdown(
            ReportKind.COMPARISON,
            "张三",
            [_exam("E2", "2024-01-01"), _exam("E1", None)],
            "分析",
            system_name="测试系统",
        )

        assert markdown.startswith("# 张三 - 健康对比分析报告\n")
        assert "- **对比体检ID**: 第1次: E2, 第2次: E1" in markdown
        assert "第2次: 未知" in markdown
        assert "4. 对比分析基于历史体检数据" in markdown

    def test_file_name(self):
        assert report_file_name(ReportKind.HEALTH_ASSESSMENT, "张三", "pdf") == "张三-健康评估报告.pdf"
        assert report_file_name("comparison", None, "md") == "客户-健康对比分析报告.md"
