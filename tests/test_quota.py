"""Tests for credit debit and report creation."""

import pytest

from reportflow.exceptions import InsufficientCreditsError
from reportflow.models.job import JOB_QUEUED, Job
from reportflow.models.report import Report, ReportStatus
from reportflow.services.quota import create_report_run, debit_credit


def test_create_report_run_debits_and_enqueues(test_db, user):
    """Test that the report, its job and the debit land together."""
    report = create_report_run(test_db, user.id, "Quantum computing")

    test_db.refresh(user)
    assert user.credits == 2
    assert report.status == ReportStatus.PENDING
    assert report.topic == "Quantum computing"

    job = test_db.query(Job).filter(Job.report_id == report.id).one()
    assert job.status == JOB_QUEUED


def test_create_report_run_without_credits(test_db, user):
    """Test that nothing is written when the user has no credit."""
    user.credits = 0
    test_db.commit()

    with pytest.raises(InsufficientCreditsError):
        create_report_run(test_db, user.id, "Quantum computing")

    assert test_db.query(Report).count() == 0
    assert test_db.query(Job).count() == 0
    test_db.refresh(user)
    assert user.credits == 0


def test_credits_never_go_negative(test_db, user):
    """Test that the last credit can only be spent once."""
    user.credits = 1
    test_db.commit()

    assert debit_credit(test_db, user.id)
    assert not debit_credit(test_db, user.id)
    test_db.commit()

    test_db.refresh(user)
    assert user.credits == 0
