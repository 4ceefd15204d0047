"""Report API schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from reportflow.models.report import ReportStatus


class ReportCreate(BaseModel):
    """Schema for requesting a new report."""

    topic: Any = None  # validated by sanitize_topic for consistent error codes


class ReportCreated(BaseModel):
    """Response after starting a report run."""

    report_id: UUID
    topic: str
    status: ReportStatus


class ReportSummary(BaseModel):
    """List entry for a report."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    topic: str
    status: ReportStatus
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ReportDetail(ReportSummary):
    """Full report projection: status plus every artifact present so far."""

    research_plan: Optional[Dict[str, Any]] = None
    findings: Optional[Dict[str, Any]] = None
    critique: Optional[Dict[str, Any]] = None
    final_report: Optional[str] = None
    report_metadata: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None


class ReportList(BaseModel):
    """Caller's most recent reports."""

    reports: List[ReportSummary]


class CancelResponse(BaseModel):
    """Response after cancelling a report."""

    report_id: UUID
    status: ReportStatus
    message: str
