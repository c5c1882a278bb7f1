"""Medical exam source data models."""

from sqlalchemy import String, Integer, ForeignKey, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from stemcare.app.db.base import Base


class HealthAssessment(Base):
    """
    One department's findings for a medical exam.

    Attributes:
        id: Row identifier
        customer_id: Owning customer
        medical_exam_id: Exam identifier shared by all departments of one visit
        department: Department name
        assessment_date: Exam date (ISO string, as entered)
        doctor: Examining doctor
        assessment_data: JSON list of {"itemName", "itemResult"} objects, or free text
        summary: Department summary
    """

    __tablename__ = "health_assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    medical_exam_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(50), nullable=False)
    assessment_date: Mapped[str | None] = mapped_column(String(20), nullable=True)
    doctor: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assessment_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<HealthAssessment(exam={self.medical_exam_id}, department={self.department})>"


class LaboratoryItem(Base):
    """One laboratory test result belonging to a medical exam."""

    __tablename__ = "laboratory_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    exam_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    test_category: Mapped[str] = mapped_column(String(50), nullable=False)
    item_name: Mapped[str] = mapped_column(String(100), nullable=False)
    item_result: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_value: Mapped[str | None] = mapped_column(String(100), nullable=True)
    abnormal_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<LaboratoryItem(exam={self.exam_id}, item={self.item_name})>"
