"""Report routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from reportflow.auth import access_limiter, generate_limiter, get_current_user, rate_limited
from reportflow.config import settings
from reportflow.database import get_db
from reportflow.exceptions import InsufficientCreditsError, TopicValidationError
from reportflow.models.job import JOB_RUNNING, Job
from reportflow.models.report import Report, ReportStatus
from reportflow.models.user import User
from reportflow.schemas.report import (
    CancelResponse,
    ReportCreate,
    ReportCreated,
    ReportDetail,
    ReportList,
    ReportSummary,
)
from reportflow.services.cancellation import CancellationRegistry, get_cancellations
from reportflow.services.quota import create_report_run
from reportflow.services.report_store import transition
from reportflow.services.validators import get_error_message, sanitize_for_logging, sanitize_topic

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


def get_owned_report(db: Session, report_id: uuid.UUID, user: User) -> Report:
    """Load a report the caller owns, or raise 404/403."""
    report = db.get(Report, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    if report.user_id != user.id:
        logger.warning(f"User {user.id} denied access to report {report_id}")
        raise HTTPException(status_code=403, detail="Unauthorized access to this report")
    return report


@router.post("/generate", response_model=ReportCreated)
def generate_report(
    data: ReportCreate,
    user: User = Depends(rate_limited("generate-report", generate_limiter)),
    db: Session = Depends(get_db),
):
    """Start a report run: debit one credit, create the report, enqueue it."""
    try:
        topic = sanitize_topic(data.topic)
    except TopicValidationError as e:
        logger.warning(f"Rejected topic from user {user.id}: {e.code}")
        raise HTTPException(status_code=400, detail=get_error_message("INVALID_TOPIC"))

    try:
        report = create_report_run(db, user.id, topic)
    except InsufficientCreditsError:
        logger.warning(f"User {user.id} has insufficient credits")
        raise HTTPException(status_code=402, detail=get_error_message("INSUFFICIENT_CREDITS"))
    except Exception as e:
        logger.error(f"Failed to create report: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=get_error_message("INTERNAL_ERROR"))

    logger.info(f"Report {report.id} queued for topic {sanitize_for_logging(topic)!r}")

    return ReportCreated(report_id=report.id, topic=report.topic, status=report.status)


@router.get("", response_model=ReportList)
def list_reports(
    user: User = Depends(rate_limited("list-reports", access_limiter)),
    db: Session = Depends(get_db),
):
    """List the caller's most recent reports."""
    reports = (
        db.query(Report)
        .filter(Report.user_id == user.id)
        .order_by(Report.created_at.desc())
        .limit(settings.LIST_LIMIT)
        .all()
    )
    return ReportList(reports=[ReportSummary.model_validate(r) for r in reports])


@router.get("/{report_id}", response_model=ReportDetail)
def get_report(
    report_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the current report status and artifacts."""
    report = get_owned_report(db, report_id, user)
    return ReportDetail.model_validate(report)


@router.post("/{report_id}/cancel", response_model=CancelResponse)
def cancel_report(
    report_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: CancellationRegistry = Depends(get_cancellations),
):
    """Cancel a report that is still in progress."""
    report = get_owned_report(db, report_id, user)
    if report.status.is_terminal:
        raise HTTPException(
            status_code=409, detail=f"Cannot cancel report with status: {report.status.value}"
        )

    registry.cancel(report_id)

    if not transition(db, report_id, ReportStatus.CANCELLED, error_message="Cancelled by user"):
        # Reached a terminal status between the read and the update; the run is over
        registry.discard(report_id)
        db.refresh(report)
        raise HTTPException(
            status_code=409, detail=f"Cannot cancel report with status: {report.status.value}"
        )

    logger.info(f"Report {report_id} cancelled by user {user.id}")

    return CancelResponse(
        report_id=report_id,
        status=ReportStatus.CANCELLED,
        message="Report generation cancelled successfully",
    )


@router.delete("/{report_id}")
def delete_report(
    report_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: CancellationRegistry = Depends(get_cancellations),
):
    """Delete a report; later writes from an in-flight run are dropped."""
    report = get_owned_report(db, report_id, user)

    # Only a claimed job has a workflow to signal; queued jobs go with the delete
    running = (
        db.query(Job.job_id)
        .filter(Job.report_id == report_id, Job.status == JOB_RUNNING)
        .first()
    )
    if running is not None and not report.status.is_terminal:
        registry.cancel(report_id)

    db.query(Job).filter(Job.report_id == report_id).delete(synchronize_session=False)
    db.delete(report)
    db.commit()

    logger.info(f"Deleted report {report_id}")

    return {"message": "Report deleted"}
