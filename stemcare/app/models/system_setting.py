"""System setting model."""

from datetime import datetime
from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from stemcare.app.db.base import Base
from stemcare.app.utils.time import utcnow


class SystemSetting(Base):
    """
    Key/value row of the general system settings.

    ``value`` is always stored as text; ``value_type`` (boolean, number, string)
    tells the cache how to decode it.
    """

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    value_type: Mapped[str] = mapped_column(String(20), nullable=False, default="string")
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<SystemSetting(key={self.key}, value={self.value})>"
