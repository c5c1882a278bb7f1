"""Report prompt building and markdown rendering for each report kind."""

import logging
from dataclasses import dataclass
from datetime import datetime

from stemcare.app.core.config import settings
from stemcare.app.models.report import ReportKind
from stemcare.app.services.content_store import ExamRecord

logger = logging.getLogger(__name__)


HEALTH_ASSESSMENT_SYSTEM_PROMPT = (
    "你是一位专业的医疗AI助手，专门负责分析体检报告并生成健康评估。"
    "请基于提供的体检数据，生成专业、详细、易懂的健康评估报告。"
)

COMPARISON_SYSTEM_PROMPT = (
    "你是一位专业的医疗AI助手，专门负责分析多次体检报告并进行对比分析。"
    "请基于提供的多次体检数据，生成专业、详细、易懂的健康对比分析报告，"
    "重点关注健康趋势变化和需要关注的健康问题。"
)

HEALTH_ASSESSMENT_PROMPT = """需要帮我根据这份体检报告生成一份健康评估。

**客户姓名**：{customer_name}

{exam_content}

**请生成一份完整的健康评估报告，包括：**
1. 健康状况总体评估
2. 各项指标分析
3. 异常指标提醒
4. 健康建议
5. 复查建议
6. 生活方式指导

请使用专业的医疗术语，同时确保内容通俗易懂，便于患者理解。"""

COMPARISON_PROMPT = """需要帮我根据这些体检报告生成一份健康对比分析。

**客户姓名**：{customer_name}
**对比体检次数**：{exam_count}

{exam_content}

**请生成一份完整的健康对比分析报告，包括：**
1. 健康状况总体对比
2. 关键指标变化趋势分析
3. 新出现异常指标提醒
4. 改善或恶化的指标分析
5. 健康风险评估变化
6. 针对性健康建议
7. 复查和随访建议
8. 生活方式调整指导
9. 检验数据请使用表格方式展现，清晰对比各次检查结果

请重点分析各次体检间的变化趋势，提供时间序列的健康洞察，使用专业的医疗术语，同时确保内容通俗易懂，便于患者理解。"""

DISCLAIMER_LINES = [
    "本报告基于AI算法生成，仅供参考，不能替代专业医生的诊断。",
    "如有健康问题，请及时咨询专业医疗机构。",
    "请根据医生建议进行定期复查和健康管理。",
]

COMPARISON_DISCLAIMER = "对比分析基于历史体检数据，个体差异可能影响分析结果。"


@dataclass(frozen=True)
class KindProfile:
    """Per-kind constants: titles, prompts and input bounds."""

    kind: ReportKind
    title: str
    analysis_heading: str
    system_prompt: str
    prompt_template: str
    min_inputs: int

    @property
    def max_inputs(self) -> int:
        if self.kind == ReportKind.COMPARISON:
            return settings.comparison_max_selections
        return 1


PROFILES = {
    ReportKind.HEALTH_ASSESSMENT: KindProfile(
        kind=ReportKind.HEALTH_ASSESSMENT,
        title="健康评估报告",
        analysis_heading="AI健康评估分析",
        system_prompt=HEALTH_ASSESSMENT_SYSTEM_PROMPT,
        prompt_template=HEALTH_ASSESSMENT_PROMPT,
        min_inputs=1,
    ),
    ReportKind.COMPARISON: KindProfile(
        kind=ReportKind.COMPARISON,
        title="健康对比分析报告",
        analysis_heading="AI健康对比分析",
        system_prompt=COMPARISON_SYSTEM_PROMPT,
        prompt_template=COMPARISON_PROMPT,
        min_inputs=2,
    ),
}


def get_profile(kind: ReportKind | str) -> KindProfile:
    return PROFILES[ReportKind(kind)]


def report_file_name(kind: ReportKind | str, customer_name: str | None, extension: str) -> str:
    """File name offered for downloads, e.g. ``张三-健康评估报告.pdf``."""
    profile = get_profile(kind)
    return f"{customer_name or '客户'}-{profile.title}.{extension}"


def build_prompt(
    kind: ReportKind | str,
    customer_name: str | None,
    exam_content: str,
    exam_count: int,
) -> tuple[str, str]:
    """
    Build the analysis request for a report.

    Args:
        kind: Report kind
        customer_name: Name shown to the model
        exam_content: Exam payload from ``ExamContentStore.get_input_content``
        exam_count: Number of exams in the payload

    Returns:
        Tuple of (system_prompt, prompt)
    """
    profile = get_profile(kind)
    prompt = profile.prompt_template.format(
        customer_name=customer_name or "未知",
        exam_count=exam_count,
        exam_content=exam_content,
    )
    logger.info(f"[REPORT] Built {profile.kind.value} prompt ({exam_count} exams, {len(prompt)} chars)")
    return profile.system_prompt, prompt


def render_markdown(
    kind: ReportKind | str,
    customer_name: str | None,
    exams: list[ExamRecord],
    analysis: str,
    system_name: str,
    generated_at: datetime | None = None,
) -> str:
    """
    Wrap the model output in the final markdown report.

    Args:
        kind: Report kind
        customer_name: Customer name for the title
        exams: Exam records in submission order
        analysis: Generated analysis text
        system_name: Display name of the deployment for the footer
        generated_at: Timestamp printed in the report (default: now)

    Returns:
        Markdown document
    """
    profile = get_profile(kind)
    timestamp = (generated_at or datetime.now()).strftime("%Y/%m/%d %H:%M:%S")
    name = customer_name or "未知"

    md_lines = []
    md_lines.append(f"# {name} - {profile.title}")
    md_lines.append("")

    md_lines.append("## 基本信息")
    md_lines.append("")
    md_lines.append(f"- **姓名**: {name}")
    if profile.kind == ReportKind.COMPARISON:
        md_lines.append(f"- **对比体检次数**: {len(exams)}")
        md_lines.append(
            "- **对比体检ID**: "
            + ", ".join(f"第{i}次: {exam.exam_id}" for i, exam in enumerate(exams, 1))
        )
        md_lines.append(
            "- **体检日期**: "
            + ", ".join(f"第{i}次: {exam.exam_date or '未知'}" for i, exam in enumerate(exams, 1))
        )
    else:
        exam = exams[0]
        md_lines.append(f"- **体检ID**: {exam.exam_id}")
        md_lines.append(f"- **体检日期**: {exam.exam_date or '未知'}")
    md_lines.append(f"- **报告生成时间**: {timestamp}")
    md_lines.append("")
    md_lines.append("---")
    md_lines.append("")

    md_lines.append(f"## {profile.analysis_heading}")
    md_lines.append("")
    md_lines.append(analysis)
    md_lines.append("")
    md_lines.append("---")
    md_lines.append("")

    md_lines.append("## 重要提示")
    md_lines.append("")
    disclaimers = list(DISCLAIMER_LINES)
    if profile.kind == ReportKind.COMPARISON:
        disclaimers.append(COMPARISON_DISCLAIMER)
    for i, line in enumerate(disclaimers, 1):
        md_lines.append(f"{i}. {line}")
    md_lines.append("")
    md_lines.append("---")
    md_lines.append("")
    md_lines.append(f"*报告生成时间: {timestamp}*")
    md_lines.append(f"*{system_name} · Powered by DeepSeek AI*")

    return "\n".join(md_lines) + "\n"
