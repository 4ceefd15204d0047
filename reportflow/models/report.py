"""Report model and its status state machine."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from reportflow.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ReportStatus(str, enum.Enum):
    """Ordered report status.

    Non-terminal values only move forward. FAILED and CANCELLED can be
    reached from any non-terminal value; terminal values never change.
    """

    PENDING = "PENDING"
    PLANNING = "PLANNING"
    RESEARCHING = "RESEARCHING"
    CRITIQUING = "CRITIQUING"
    WRITING = "WRITING"
    FORMATTING = "FORMATTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        return _PROGRESSION.index(self) if self in _PROGRESSION else len(_PROGRESSION)

    def can_transition(self, new: "ReportStatus") -> bool:
        """Whether moving from this status to ``new`` is allowed."""
        if self.is_terminal:
            return False
        if new in (ReportStatus.FAILED, ReportStatus.CANCELLED):
            return True
        return new.rank > self.rank

    def predecessors(self):
        """Statuses from which a transition to this status is allowed."""
        return [s for s in ReportStatus if s.can_transition(self)]


_PROGRESSION = [
    ReportStatus.PENDING,
    ReportStatus.PLANNING,
    ReportStatus.RESEARCHING,
    ReportStatus.CRITIQUING,
    ReportStatus.WRITING,
    ReportStatus.FORMATTING,
    ReportStatus.COMPLETED,
]

TERMINAL_STATUSES = frozenset(
    {ReportStatus.COMPLETED, ReportStatus.FAILED, ReportStatus.CANCELLED}
)

ACTIVE_STATUSES = [s for s in ReportStatus if s not in TERMINAL_STATUSES]


class Report(Base):
    """Report represents one research run for a submitted topic."""

    __tablename__ = "reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    topic = Column(Text, nullable=False)
    status = Column(
        Enum(ReportStatus, name="report_status", native_enum=False, length=16),
        nullable=False,
        default=ReportStatus.PENDING,
    )
    research_plan = Column(JSONType)
    findings = Column(JSONType)
    critique = Column(JSONType)
    final_report = Column(Text)
    report_metadata = Column(JSONType)
    error_message = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("idx_reports_user_created", "user_id", "created_at"),
    )
