"""
Source content assembly for report generation.

Reads a customer's department findings and laboratory results for a set of
medical exams and renders them as the plain-text payload that is sent to the
analysis service.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stemcare.app.core.exceptions import ExamNotFoundError
from stemcare.app.models.exam import HealthAssessment, LaboratoryItem

logger = logging.getLogger(__name__)

LABORATORY_DEPARTMENT = "检验科"


@dataclass
class DepartmentFindings:
    """Findings of one department (or the grouped laboratory results)."""

    department: str
    assessment_date: str | None = None
    doctor: str | None = None
    lines: list[str] = field(default_factory=list)
    summary: str | None = None


@dataclass
class ExamRecord:
    """All findings that belong to one medical exam."""

    exam_id: str
    exam_date: str | None
    departments: list[DepartmentFindings]


@dataclass
class ExamSummary:
    """One selectable exam in a customer's exam list."""

    exam_id: str
    exam_date: str | None
    department_count: int
    has_laboratory: bool


def _assessment_lines(assessment_data: str | None) -> list[str]:
    """Decode the JSON item list of a department record; fall back to the raw text."""
    if not assessment_data:
        return []
    try:
        items = json.loads(assessment_data)
    except json.JSONDecodeError:
        return [assessment_data]
    if not isinstance(items, list):
        return [assessment_data]
    lines = []
    for item in items:
        if isinstance(item, dict) and item.get("itemName") and item.get("itemResult"):
            lines.append(f"{item['itemName']}：{item['itemResult']}")
    return lines


def _laboratory_line(item: LaboratoryItem) -> str:
    line = f"{item.item_name}: {item.item_result or ''}"
    if item.item_unit:
        line += f" {item.item_unit}"
    if item.reference_value:
        line += f" (参考值: {item.reference_value})"
    if item.abnormal_flag:
        line += " [异常]"
    return line


class ExamContentStore:
    """Assembles exam content for a customer."""

    def __init__(self, db: AsyncSession):
        self.db = db
        # Loaded exams, keyed by (customer_id, exam_id), for the lifetime of the session
        self._loaded: dict[tuple[str, str], ExamRecord] = {}

    async def find_missing(self, customer_id: str, exam_ids: list[str]) -> list[str]:
        """Return the exam ids that have no data at all for this customer."""
        assessment_rows = await self.db.execute(
            select(HealthAssessment.medical_exam_id)
            .where(HealthAssessment.customer_id == customer_id)
            .where(HealthAssessment.medical_exam_id.in_(exam_ids))
        )
        lab_rows = await self.db.execute(
            select(LaboratoryItem.exam_id)
            .where(LaboratoryItem.customer_id == customer_id)
            .where(LaboratoryItem.exam_id.in_(exam_ids))
        )
        found = set(assessment_rows.scalars().all()) | set(lab_rows.scalars().all())
        return [exam_id for exam_id in exam_ids if exam_id not in found]

    async def list_exams(
        self,
        customer_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[ExamSummary]:
        """
        List the exams a report can be built from, newest first.

        The exam date is the date of the first department record, the same
        date the report shows. Exams without a date are only listed when no
        date filter is given.
        """
        assessment_rows = await self.db.execute(
            select(HealthAssessment.medical_exam_id, HealthAssessment.department, HealthAssessment.assessment_date)
            .where(HealthAssessment.customer_id == customer_id)
            .order_by(HealthAssessment.medical_exam_id, HealthAssessment.department)
        )
        lab_rows = await self.db.execute(
            select(LaboratoryItem.exam_id)
            .where(LaboratoryItem.customer_id == customer_id)
            .distinct()
        )
        lab_exam_ids = set(lab_rows.scalars().all())

        dates: dict[str, str | None] = {}
        departments: dict[str, set[str]] = {}
        for exam_id, department, assessment_date in assessment_rows.all():
            dates.setdefault(exam_id, assessment_date)
            departments.setdefault(exam_id, set()).add(department)

        summaries = []
        for exam_id in set(dates) | lab_exam_ids:
            exam_date = dates.get(exam_id)
            if (start_date or end_date) and not exam_date:
                continue
            if start_date and exam_date < start_date.isoformat():
                continue
            if end_date and exam_date > end_date.isoformat():
                continue
            has_laboratory = exam_id in lab_exam_ids
            summaries.append(
                ExamSummary(
                    exam_id=exam_id,
                    exam_date=exam_date,
                    department_count=len(departments.get(exam_id, ())) + (1 if has_laboratory else 0),
                    has_laboratory=has_laboratory,
                )
            )

        summaries.sort(key=lambda summary: (summary.exam_date or "", summary.exam_id), reverse=True)
        logger.info(f"[CONTENT] Listed {len(summaries)} exams for customer {customer_id}")
        return summaries

    async def load_exam(self, customer_id: str, exam_id: str) -> ExamRecord:
        """
        Load the findings of one exam.

        Raises:
            ExamNotFoundError: If the exam has no data for this customer
        """
        cached = self._loaded.get((customer_id, exam_id))
        if cached is not None:
            return cached

        assessments_result = await self.db.execute(
            select(HealthAssessment)
            .where(HealthAssessment.customer_id == customer_id)
            .where(HealthAssessment.medical_exam_id == exam_id)
            .order_by(HealthAssessment.department)
        )
        assessments = assessments_result.scalars().all()

        lab_result = await self.db.execute(
            select(LaboratoryItem)
            .where(LaboratoryItem.customer_id == customer_id)
            .where(LaboratoryItem.exam_id == exam_id)
            .order_by(LaboratoryItem.test_category, LaboratoryItem.item_name)
        )
        lab_items = lab_result.scalars().all()

        if not assessments and not lab_items:
            raise ExamNotFoundError(exam_id, customer_id)

        departments = [
            DepartmentFindings(
                department=row.department,
                assessment_date=row.assessment_date,
                doctor=row.doctor,
                lines=_assessment_lines(row.assessment_data),
                summary=row.summary,
            )
            for row in assessments
        ]

        if lab_items:
            lab_lines = []
            for category, items in groupby(lab_items, key=lambda item: item.test_category):
                lab_lines.append(f"{category}：")
                lab_lines.extend(_laboratory_line(item) for item in items)
            departments.append(
                DepartmentFindings(
                    department=LABORATORY_DEPARTMENT,
                    assessment_date=assessments[0].assessment_date if assessments else None,
                    lines=lab_lines,
                    summary="检验科评估 - 包含血常规、生化等检查项目",
                )
            )

        exam_date = departments[0].assessment_date if departments else None
        record = ExamRecord(exam_id=exam_id, exam_date=exam_date, departments=departments)
        self._loaded[(customer_id, exam_id)] = record
        return record

    async def load_exams(self, customer_id: str, exam_ids: list[str]) -> list[ExamRecord]:
        return [await self.load_exam(customer_id, exam_id) for exam_id in exam_ids]

    async def get_input_content(self, customer_id: str, exam_ids: list[str]) -> str:
        """
        Render all exams as one text payload, in the given order.

        Raises:
            ExamNotFoundError: If any exam has no data for this customer
        """
        exams = await self.load_exams(customer_id, exam_ids)
        logger.info(f"[CONTENT] Assembled {len(exams)} exams for customer {customer_id}")
        return render_exams(exams)


def render_exams(exams: list[ExamRecord]) -> str:
    """Render exam records as markdown-flavoured text."""
    lines = []
    for index, exam in enumerate(exams, 1):
        lines.append(f"### 第{index}次体检 (ID: {exam.exam_id})")
        lines.append(f"体检日期：{exam.exam_date or '未知'}")
        lines.append("")
        for dept_index, dept in enumerate(exam.departments, 1):
            lines.append(f"#### {dept_index}. {dept.department}")
            if dept.assessment_date:
                lines.append(f"检查日期：{dept.assessment_date}")
            if dept.doctor:
                lines.append(f"检查医生：{dept.doctor}")
            lines.extend(dept.lines)
            if dept.summary:
                lines.append(f"科室小结：{dept.summary}")
            lines.append("")
    return "\n".join(lines).strip()
