"""Report model for storing generated reports."""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, Text, LargeBinary, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stemcare.app.db.base import Base
from stemcare.app.utils.time import utcnow

if TYPE_CHECKING:
    from stemcare.app.models.customer import Customer


INPUT_ID_DELIMITER = ","


class ReportStatus(str, Enum):
    """Report generation status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def label(self) -> str:
        """Display label used by the admin frontend."""
        return _STATUS_LABELS[self]


TERMINAL_STATUSES = frozenset({ReportStatus.COMPLETED, ReportStatus.FAILED})
ACTIVE_STATUSES = (ReportStatus.PENDING, ReportStatus.PROCESSING)

_STATUS_LABELS = {
    ReportStatus.PENDING: "待处理",
    ReportStatus.PROCESSING: "生成中",
    ReportStatus.COMPLETED: "已完成",
    ReportStatus.FAILED: "生成失败",
}


class ReportKind(str, Enum):
    """Kinds of AI-assisted reports."""
    HEALTH_ASSESSMENT = "health-assessment"
    COMPARISON = "comparison"


def normalize_input_ids(input_ids: list[str]) -> str:
    """
    Normalize source-document ids for duplicate detection.

    The ids are sorted ascending before joining, so the same set of ids
    always produces the same string regardless of submission order.
    """
    return INPUT_ID_DELIMITER.join(sorted(input_ids))


class Report(Base):
    """
    Report model for AI-assisted analysis reports.

    One row per generation request. ``content`` is set only when the report
    completed and ``error_message`` only when it failed. ``artifact`` caches
    the converted PDF and can always be rebuilt from ``content``.
    """

    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_duplicate_lookup", "customer_id", "kind", "input_ids_normalized", "created_at"),
        Index("ix_reports_status_updated", "status", "updated_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Inputs
    input_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)  # submission order
    input_ids_normalized: Mapped[str] = mapped_column(String(500), nullable=False)

    # Generation status
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReportStatus.PENDING.value,
    )
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    artifact: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Observability metadata
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    model_identifier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    token_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer", back_populates="reports")

    @property
    def report_status(self) -> ReportStatus:
        return ReportStatus(self.status)

    @property
    def report_kind(self) -> ReportKind:
        return ReportKind(self.kind)

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, kind={self.kind}, status={self.status})>"
