"""SQLAlchemy ORM models."""

from reportflow.models.job import Job
from reportflow.models.report import Report, ReportStatus
from reportflow.models.user import User

__all__ = [
    "Job",
    "Report",
    "ReportStatus",
    "User",
]
