"""Tests for the report workflow engine."""

import asyncio

import httpx
import pytest

from fakes import (
    CRITIQUE_RESPONSE,
    DRAFT_REPORT,
    PLAN_RESPONSE,
    REVIEWED_REPORT,
    FakeLLM,
    FakeSearch,
    RecordingStore,
    make_workflow,
)
from reportflow.agents.writer import estimate_word_count
from reportflow.exceptions import GenerationError, ResearchError, SearchError
from reportflow.models.report import Report, ReportStatus
from reportflow.services.cancellation import CancellationRegistry
from reportflow.services.report_store import transition
from reportflow.workflow import PHASES, PLAN, RESEARCH, WRITE, RunOutcome, classify_error


@pytest.fixture
def report(test_db, user):
    report = Report(user_id=user.id, topic="Quantum computing")
    test_db.add(report)
    test_db.commit()
    test_db.refresh(report)
    return report


def reload(db, report_id):
    db.expire_all()
    return db.get(Report, report_id)


def run(workflow, report):
    return asyncio.run(workflow.run(report.id, report.topic))


def test_happy_path_completes(session_factory, test_db, report):
    """Test a full run with every artifact persisted."""
    llm = FakeLLM()
    store = RecordingStore(session_factory)
    workflow = make_workflow(session_factory, llm=llm, store=store)

    assert run(workflow, report) == RunOutcome.COMPLETED

    stored = reload(test_db, report.id)
    assert stored.status == ReportStatus.COMPLETED
    assert stored.final_report == REVIEWED_REPORT
    assert len(stored.research_plan["questions"]) == 6
    assert stored.findings["summary"]["successful_researches"] == 6
    assert stored.critique["overall_assessment"] == "Solid findings with minor gaps"
    assert stored.report_metadata["source_count"] == 12
    assert stored.report_metadata["word_count"] == estimate_word_count(REVIEWED_REPORT)
    assert stored.report_metadata["review_summary"]["overall_quality"] == "excellent"
    assert stored.completed_at is not None
    assert stored.error_message is None


def test_statuses_advance_in_order(session_factory, report):
    """Test that each phase writes its status once, in pipeline order."""
    store = RecordingStore(session_factory)

    run(make_workflow(session_factory, store=store), report)

    assert store.statuses == [phase.status for phase in PHASES]
    assert store.statuses == [
        ReportStatus.PLANNING,
        ReportStatus.RESEARCHING,
        ReportStatus.CRITIQUING,
        ReportStatus.WRITING,
        ReportStatus.FORMATTING,
    ]


def test_model_tiers(session_factory, report):
    """Test that only the writer uses the premium tier."""
    llm = FakeLLM()

    run(make_workflow(session_factory, llm=llm), report)

    tiers = {call["kind"]: call["tier"] for call in llm.calls}
    assert tiers == {
        "plan": "basic",
        "synthesize": "basic",
        "critique": "basic",
        "write": "premium",
        "review": "basic",
    }


def test_research_failure_fails_run(session_factory, test_db, report):
    """Test that research failing on every attempt fails the report."""
    llm = FakeLLM()
    search = FakeSearch(error=SearchError("Web search failed: search API error (500)"))
    workflow = make_workflow(session_factory, llm=llm, search=search)

    assert run(workflow, report) == RunOutcome.FAILED

    stored = reload(test_db, report.id)
    assert stored.status == ReportStatus.FAILED
    assert stored.error_message == "Research failed: no research findings could be gathered"
    assert stored.research_plan is not None
    assert stored.findings is None
    assert stored.final_report is None
    assert stored.completed_at is not None
    # Six questions, three phase attempts
    assert len(search.queries) == 18
    assert llm.count("write") == 0


def test_zero_sources_for_every_question_fails_run(session_factory, test_db, report):
    """Test that searches returning nothing for every question fail the report."""
    llm = FakeLLM()
    search = FakeSearch(results=[])
    store = RecordingStore(session_factory)
    workflow = make_workflow(session_factory, llm=llm, search=search, store=store)

    assert run(workflow, report) == RunOutcome.FAILED

    stored = reload(test_db, report.id)
    assert stored.status == ReportStatus.FAILED
    assert stored.error_message == "Research failed: no research findings could be gathered"
    assert stored.findings is None
    assert stored.final_report is None
    assert store.statuses == [ReportStatus.PLANNING, ReportStatus.RESEARCHING]
    # Six questions, three phase attempts, nothing to synthesize from
    assert len(search.queries) == 18
    assert llm.count("synthesize") == 0
    assert llm.count("critique") == 0


def test_planning_failure_fails_run(session_factory, test_db, report):
    """Test that a planner that never succeeds fails at the first phase."""
    llm = FakeLLM(plan=GenerationError("AI generation failed after 3 attempts: boom"))

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.FAILED

    stored = reload(test_db, report.id)
    assert stored.error_message == "Planning failed: could not produce a research plan"
    assert llm.count("plan") == 3
    assert llm.count("synthesize") == 0


def test_transient_phase_failure_is_retried(session_factory, test_db, report):
    """Test that a phase succeeding on a later attempt completes the run."""
    outcomes = [GenerationError("blip"), PLAN_RESPONSE]
    llm = FakeLLM(plan=lambda: outcomes.pop(0))

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.COMPLETED

    assert llm.count("plan") == 2
    assert reload(test_db, report.id).status == ReportStatus.COMPLETED


def test_short_draft_fails_run(session_factory, test_db, report):
    llm = FakeLLM(write="Too short.")

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.FAILED

    stored = reload(test_db, report.id)
    assert stored.error_message == "Writing failed: report draft was empty"
    assert stored.critique is not None
    assert llm.count("write") == 3


def test_critique_failure_does_not_fail_run(session_factory, test_db, report):
    """Test that the degraded critique lets the run continue."""
    llm = FakeLLM(critique=GenerationError("down"))

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.COMPLETED

    stored = reload(test_db, report.id)
    assert stored.critique["confidence"] == 0.3
    assert stored.status == ReportStatus.COMPLETED


def test_unparsable_review_keeps_draft(session_factory, test_db, report):
    """Test that a bad review response still completes with the draft."""
    llm = FakeLLM(review="I am not JSON")

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.COMPLETED

    stored = reload(test_db, report.id)
    assert stored.final_report == DRAFT_REPORT.strip()
    assert stored.report_metadata["review_summary"]["overall_quality"] == "needs-work"
    assert stored.report_metadata["review_summary"]["readability_score"] == 50


def test_cancel_during_phase_discards_result(session_factory, test_db, report):
    """Test that a cancel landing mid-phase stops the run with no more writes."""
    registry = CancellationRegistry()
    report_id = report.id

    def cancel_then_respond():
        db = session_factory()
        try:
            transition(db, report_id, ReportStatus.CANCELLED, error_message="Cancelled by user")
        finally:
            db.close()
        registry.cancel(report_id)
        return CRITIQUE_RESPONSE

    llm = FakeLLM(critique=cancel_then_respond)
    workflow = make_workflow(session_factory, llm=llm, registry=registry)

    assert run(workflow, report) == RunOutcome.CANCELLED

    stored = reload(test_db, report_id)
    assert stored.status == ReportStatus.CANCELLED
    assert stored.error_message == "Cancelled by user"
    assert stored.critique is None
    assert stored.final_report is None
    assert llm.count("write") == 0
    assert not registry.is_cancelled(report_id)


def test_cancel_between_retry_attempts(session_factory, report):
    """Test that a failed attempt is not retried after a cancel signal."""
    registry = CancellationRegistry()
    report_id = report.id

    def fail_and_cancel():
        registry.cancel(report_id)
        return GenerationError("blip")

    llm = FakeLLM(plan=fail_and_cancel)

    assert run(make_workflow(session_factory, llm=llm, registry=registry), report) == RunOutcome.CANCELLED
    assert llm.count("plan") == 1


def test_cancel_signal_before_start(session_factory, report):
    registry = CancellationRegistry()
    registry.cancel(report.id)
    llm = FakeLLM()

    assert run(make_workflow(session_factory, llm=llm, registry=registry), report) == RunOutcome.CANCELLED
    assert llm.calls == []


def test_terminal_report_is_not_rerun(session_factory, test_db, report):
    """Test that a run for an already-terminal report writes nothing."""
    transition(test_db, report.id, ReportStatus.FAILED, error_message="earlier failure")
    llm = FakeLLM()

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.CANCELLED

    assert llm.calls == []
    assert reload(test_db, report.id).error_message == "earlier failure"


def test_report_deleted_mid_run(session_factory, report):
    """Test that deleting the record stops the run quietly."""
    report_id = report.id

    def delete_then_respond():
        db = session_factory()
        try:
            db.query(Report).filter(Report.id == report_id).delete()
            db.commit()
        finally:
            db.close()
        return "{}"

    llm = FakeLLM(critique=delete_then_respond)

    assert run(make_workflow(session_factory, llm=llm), report) == RunOutcome.CANCELLED
    assert llm.count("write") == 0


def test_resume_reuses_stored_artifacts(session_factory, test_db, report):
    """Test that a re-claimed run skips phases whose artifacts exist."""
    first = make_workflow(session_factory, llm=FakeLLM(write="Too short."))
    assert run(first, report) == RunOutcome.FAILED
    saved = reload(test_db, report.id)

    # Same artifacts on a fresh, still-active record
    resumed = Report(
        user_id=saved.user_id,
        topic=saved.topic,
        status=ReportStatus.CRITIQUING,
        research_plan=saved.research_plan,
        findings=saved.findings,
        critique=saved.critique,
    )
    test_db.add(resumed)
    test_db.commit()
    test_db.refresh(resumed)

    llm = FakeLLM()
    assert run(make_workflow(session_factory, llm=llm), resumed) == RunOutcome.COMPLETED

    assert llm.count("plan") == 0
    assert llm.count("synthesize") == 0
    assert llm.count("critique") == 0
    assert llm.count("write") == 1
    assert reload(test_db, resumed.id).status == ReportStatus.COMPLETED


def http_error(status_code):
    request = httpx.Request("POST", "https://llm.test/chat/completions")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


def chained(exc, cause):
    try:
        raise exc from cause
    except Exception as e:
        return e


def test_classify_error():
    """Test the user-facing failure categories."""
    assert classify_error(PLAN, chained(GenerationError("failed"), http_error(429))) == (
        "Planning failed: rate limit exceeded"
    )
    assert classify_error(RESEARCH, SearchError("x", status_code=429)) == (
        "Research failed: rate limit exceeded"
    )
    assert classify_error(RESEARCH, ResearchError("x")) == (
        "Research failed: no research findings could be gathered"
    )
    assert classify_error(WRITE, SearchError("x")) == "Writing failed: web search unavailable"
    assert classify_error(WRITE, GenerationError("x")) == "Writing failed: text generation unavailable"
    assert classify_error(PLAN, KeyError("x")) == "Planning failed: internal error"


def test_classify_error_ignores_429_in_message_text():
    """Test that a 429 inside a non-429 error body is not called a rate limit."""
    body_mentions_429 = SearchError(
        "Web search failed: search API error (500): upstream returned 429 earlier", status_code=500
    )

    assert classify_error(WRITE, body_mentions_429) == "Writing failed: web search unavailable"
    assert classify_error(PLAN, chained(GenerationError("rate limit 429"), http_error(500))) == (
        "Planning failed: text generation unavailable"
    )


def test_rate_limited_research_is_reported(session_factory, test_db, report):
    """Test that a 429 from search surfaces through the research failure."""
    search = FakeSearch(error=SearchError("Web search failed: search API error (429)", status_code=429))

    assert run(make_workflow(session_factory, search=search), report) == RunOutcome.FAILED

    assert reload(test_db, report.id).error_message == "Research failed: rate limit exceeded"
