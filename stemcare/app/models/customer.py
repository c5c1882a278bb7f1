"""Customer model."""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stemcare.app.db.base import Base
from stemcare.app.utils.time import utcnow

if TYPE_CHECKING:
    from stemcare.app.models.report import Report


class CustomerStatus(str, Enum):
    """Customer record status enum."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class Customer(Base):
    """
    Customer model representing the owning subject of exams and reports.

    Attributes:
        id: Unique customer identifier (UUID)
        name: Customer's full name
        identity_card: National identity card number
        status: Record status (Active/Inactive)
        created_at: Creation timestamp
    """

    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_card: Mapped[str | None] = mapped_column(String(18), nullable=True, unique=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CustomerStatus.ACTIVE.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )

    # Relationships
    reports: Mapped[list["Report"]] = relationship(
        "Report",
        back_populates="customer",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name={self.name}, status={self.status})>"
