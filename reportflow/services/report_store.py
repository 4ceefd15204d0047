"""Report record store with conditional, forward-only status updates."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from reportflow.models.report import ACTIVE_STATUSES, Report, ReportStatus
from reportflow.schemas.artifacts import ReportMetadata

logger = logging.getLogger(__name__)

ARTIFACT_FIELDS = ("research_plan", "findings", "critique", "final_report", "report_metadata")


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def transition(db: Session, report_id, new_status: ReportStatus, from_statuses=None, **values) -> bool:
    """
    Move a report to ``new_status`` if the state machine allows it.

    The check and the write are a single conditional UPDATE, so a concurrent
    terminal write (e.g. a cancel) can never be overwritten. Commits on
    success.

    Args:
        db: Database session
        report_id: Report id
        new_status: Target status
        from_statuses: Narrower set of allowed current statuses
        **values: Extra columns written with the status

    Returns:
        True if the row was updated, False if the report is missing or the
        transition is not allowed from its current status
    """
    allowed = new_status.predecessors()
    if from_statuses is not None:
        allowed = [s for s in from_statuses if s in allowed]

    values = {key: _dump(value) for key, value in values.items()}
    if new_status.is_terminal:
        values.setdefault("completed_at", datetime.utcnow())

    stmt = (
        update(Report)
        .where(Report.id == report_id, Report.status.in_(allowed))
        .values(status=new_status, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount == 1


def write_artifacts(db: Session, report_id, **artifacts) -> bool:
    """Write artifact columns while the report is still active."""
    unknown = set(artifacts) - set(ARTIFACT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown artifact fields: {sorted(unknown)}")

    stmt = (
        update(Report)
        .where(Report.id == report_id, Report.status.in_(ACTIVE_STATUSES))
        .values(updated_at=datetime.utcnow(), **{k: _dump(v) for k, v in artifacts.items()})
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount == 1


class ReportStore:
    """Async facade over the report table used by the workflow engine.

    Each call runs one short transaction on a worker thread, so every
    persistence write is an await point for the event loop. Writes to a
    deleted report update zero rows and are dropped.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _run(self, fn, *args, **kwargs):
        def work():
            db = self.session_factory()
            try:
                return fn(db, *args, **kwargs)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        return await asyncio.to_thread(work)

    async def get(self, report_id) -> Optional[Report]:
        """Load a report, detached from its session."""

        def load(db: Session, rid):
            report = db.get(Report, rid)
            if report is not None:
                db.expunge(report)
            return report

        return await self._run(load, report_id)

    async def status(self, report_id) -> Optional[ReportStatus]:
        report = await self.get(report_id)
        return report.status if report is not None else None

    async def advance_status(self, report_id, status: ReportStatus) -> bool:
        """Write an in-progress status; forward-only."""
        applied = await self._run(transition, report_id, status)
        if applied:
            logger.info(f"Report {report_id} -> {status.value}")
        return applied

    async def save_artifacts(self, report_id, **artifacts) -> bool:
        """Persist artifacts; dropped if the report is terminal or deleted."""
        applied = await self._run(write_artifacts, report_id, **artifacts)
        if not applied:
            logger.warning(
                f"Dropped write of {', '.join(artifacts)} for report {report_id} (terminal or deleted)"
            )
        return applied

    async def complete(self, report_id, final_report: str, metadata: ReportMetadata) -> bool:
        """Final transition from FORMATTING: report body, metadata and COMPLETED in one update."""
        applied = await self._run(
            transition,
            report_id,
            ReportStatus.COMPLETED,
            from_statuses=[ReportStatus.FORMATTING],
            final_report=final_report,
            report_metadata=metadata,
        )
        if applied:
            logger.info(f"Report {report_id} completed")
        else:
            logger.warning(f"Completion of report {report_id} dropped (terminal or deleted)")
        return applied

    async def fail(self, report_id, error_message: str) -> bool:
        applied = await self._run(
            transition, report_id, ReportStatus.FAILED, error_message=error_message
        )
        if applied:
            logger.error(f"Report {report_id} failed: {error_message}")
        return applied

    async def cancel(self, report_id, message: str = "Cancelled by user") -> bool:
        return await self._run(
            transition, report_id, ReportStatus.CANCELLED, error_message=message
        )
