"""Database models."""

from stemcare.app.models.customer import Customer, CustomerStatus
from stemcare.app.models.exam import HealthAssessment, LaboratoryItem
from stemcare.app.models.report import Report, ReportKind, ReportStatus
from stemcare.app.models.system_setting import SystemSetting

__all__ = [
    "Customer",
    "CustomerStatus",
    "HealthAssessment",
    "LaboratoryItem",
    "Report",
    "ReportKind",
    "ReportStatus",
    "SystemSetting",
]
