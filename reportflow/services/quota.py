"""Credit debit and report creation as a single transaction."""

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from reportflow.exceptions import InsufficientCreditsError
from reportflow.models.job import JOB_QUEUED, Job
from reportflow.models.report import Report, ReportStatus
from reportflow.models.user import User

logger = logging.getLogger(__name__)


def debit_credit(db: Session, user_id: int) -> bool:
    """Atomically take one credit if available (compare-and-decrement)."""
    stmt = (
        update(User)
        .where(User.id == user_id, User.credits >= 1)
        .values(credits=User.credits - 1)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def create_report_run(db: Session, user_id: int, topic: str) -> Report:
    """
    Debit one credit, create a PENDING report and enqueue its job.

    All three writes commit together or not at all.

    Args:
        db: Database session
        user_id: Owner
        topic: Sanitized topic

    Returns:
        The new report

    Raises:
        InsufficientCreditsError: If the user has no credit; nothing is written
    """
    try:
        if not debit_credit(db, user_id):
            raise InsufficientCreditsError(f"User {user_id} has no credits")

        report = Report(user_id=user_id, topic=topic, status=ReportStatus.PENDING)
        db.add(report)
        db.flush()  # Flush to get the generated id

        db.add(Job(report_id=report.id, status=JOB_QUEUED))
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(report)
    logger.info(f"Created report {report.id} for user {user_id}")
    return report
