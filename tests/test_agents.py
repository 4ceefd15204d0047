"""Tests for the planner, researcher, critic, writer and reviewer agents."""

import asyncio
import json

import pytest

from fakes import DRAFT_REPORT, REVIEWED_REPORT, FakeLLM, FakeSearch, no_sleep
from reportflow.agents.critic import Critic, validate_critique
from reportflow.agents.planner import ResearchPlanner
from reportflow.agents.researcher import Researcher
from reportflow.agents.reviewer import Reviewer, parse_review_response
from reportflow.agents.writer import Writer, estimate_word_count, extract_sources, missing_sections
from reportflow.exceptions import (
    GenerationError,
    PlanningError,
    PlanValidationError,
    ResearchError,
    SearchError,
    WritingError,
)
from reportflow.schemas.artifacts import Critique, ResearchFinding, SearchResult


def finding(question="What is X?", confidence=0.8, urls=("https://a.test",)):
    return ResearchFinding(
        question=question,
        answer="X is a thing.",
        sources=[SearchResult(title=u, url=u, snippet="s") for u in urls],
        confidence=confidence,
    )


# Planner


def test_planner_parses_plan():
    """Test a well-formed plan response."""
    plan = asyncio.run(ResearchPlanner(FakeLLM()).plan("quantum computing"))

    assert len(plan.questions) == 6
    assert plan.areas == ["Hardware", "Algorithms", "Industry"]
    assert plan.estimated_depth == "deep"
    assert plan.schema_version == 1


def test_planner_truncates_to_seven_questions():
    """Test question and area caps."""
    response = json.dumps(
        {"questions": [f"Q{i}?" for i in range(10)], "areas": [f"A{i}" for i in range(8)]}
    )

    plan = asyncio.run(ResearchPlanner(FakeLLM(plan=response)).plan("topic"))

    assert len(plan.questions) == 7
    assert len(plan.areas) == 5
    assert plan.estimated_depth == "medium"


def test_planner_rejects_too_few_questions():
    """Test that a parsed plan with under five questions is invalid."""
    response = json.dumps({"questions": ["Q1?", "Q2?"]})

    with pytest.raises(PlanValidationError, match="Only 2 questions generated"):
        asyncio.run(ResearchPlanner(FakeLLM(plan=response)).plan("topic"))


def test_planner_falls_back_on_unparsable_response():
    """Test the templated plan for non-JSON output."""
    plan = asyncio.run(ResearchPlanner(FakeLLM(plan="I cannot do JSON")).plan("fusion"))

    assert plan.questions[0] == "What is fusion?"
    assert 5 <= len(plan.questions) <= 7


def test_planner_wraps_generation_failure():
    """Test that capability errors become PlanningError."""
    llm = FakeLLM(plan=GenerationError("down"))

    with pytest.raises(PlanningError, match="Failed to plan research"):
        asyncio.run(ResearchPlanner(llm).plan("topic"))


# Researcher


def test_researcher_collects_findings_sequentially():
    """Test per-question findings, summary and delays between questions."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    search = FakeSearch()
    researcher = Researcher(FakeLLM(), search, question_delay=1.0, sleep=sleep)

    output = asyncio.run(researcher.research(["Q1?", "Q2?", "Q3?"], max_sources=2))

    assert [f.question for f in output.findings] == ["Q1?", "Q2?", "Q3?"]
    assert output.findings[0].confidence == 0.85
    assert output.summary.total_questions == 3
    assert output.summary.successful_researches == 3
    assert output.summary.total_sources == 6
    assert output.summary.average_confidence == 0.85
    assert output.errors == []
    assert delays == [1.0, 1.0]
    assert search.queries == ["Q1?", "Q2?", "Q3?"]


def test_researcher_parallel_mode():
    """Test that parallel research returns findings in question order."""
    researcher = Researcher(FakeLLM(), FakeSearch(), sleep=no_sleep)

    output = asyncio.run(researcher.research(["Q1?", "Q2?"], parallel=True))

    assert [f.question for f in output.findings] == ["Q1?", "Q2?"]


def test_researcher_records_question_without_sources():
    """Test that a question with zero sources fails alone."""

    class PartialSearch(FakeSearch):
        async def search(self, query, max_results=5):
            if query == "Q2?":
                return []
            return await super().search(query, max_results)

    researcher = Researcher(FakeLLM(), PartialSearch(), sleep=no_sleep)

    output = asyncio.run(researcher.research(["Q1?", "Q2?"]))

    assert len(output.findings) == 1
    assert output.errors[0].question == "Q2?"
    assert output.errors[0].error == "No sources found for this question"
    assert output.summary.successful_researches == 1


def test_researcher_fails_when_every_question_fails():
    """Test that zero findings is an error."""
    researcher = Researcher(FakeLLM(), FakeSearch(error=SearchError("quota")), sleep=no_sleep)

    with pytest.raises(ResearchError, match="All research questions failed"):
        asyncio.run(researcher.research(["Q1?", "Q2?"]))


def test_researcher_requires_questions():
    researcher = Researcher(FakeLLM(), FakeSearch(), sleep=no_sleep)

    with pytest.raises(ResearchError):
        asyncio.run(researcher.research([]))


def test_researcher_synthesis_fallback():
    """Test the fallback answer and default confidence for unparsable synthesis."""
    researcher = Researcher(FakeLLM(synthesize="no json"), FakeSearch(), sleep=no_sleep)

    output = asyncio.run(researcher.research(["Q1?"]))

    assert output.findings[0].answer == "Unable to synthesize findings from sources."
    assert output.findings[0].confidence == 0.3


def test_researcher_out_of_range_confidence_uses_default():
    response = json.dumps({"answer": "An answer.", "confidence": 400})
    researcher = Researcher(FakeLLM(synthesize=response), FakeSearch(), sleep=no_sleep)

    output = asyncio.run(researcher.research(["Q1?"]))

    assert output.findings[0].confidence == 0.5


# Critic


def test_critic_parses_fenced_critique():
    """Test a fenced JSON critique."""
    critique = asyncio.run(Critic(FakeLLM()).critique([finding()], "topic"))

    assert critique.confidence == 0.8
    assert critique.gaps == ["Little coverage of error correction"]
    assert critique.overall_assessment == "Solid findings with minor gaps"
    assert validate_critique(critique)


def test_critic_unparsable_response():
    """Test the neutral critique for non-JSON output."""
    critique = asyncio.run(Critic(FakeLLM(critique="meh")).critique([finding()], "topic"))

    assert critique.confidence == 0.5
    assert critique.gaps == ["Unable to generate critique"]


def test_critic_warns_on_empty_critique(caplog):
    """Test that a critique without findings or assessment is kept but logged."""
    llm = FakeLLM(critique=json.dumps({"confidence": 0.6, "gaps": []}))

    with caplog.at_level("WARNING", logger="reportflow.agents.critic"):
        critique = asyncio.run(Critic(llm).critique([finding()], "topic"))

    assert critique.confidence == 0.6
    assert not validate_critique(critique)
    assert "Critique has no findings or no overall assessment" in caplog.text


def test_critic_never_raises():
    """Test the degraded critique when generation fails."""
    llm = FakeLLM(critique=GenerationError("down"))

    critique = asyncio.run(Critic(llm).critique([finding()], "topic"))

    assert critique.confidence == 0.3
    assert critique.gaps == ["Unable to complete critique due to technical error"]
    assert critique.suggestions == ["Retry the critique process"]


# Writer


def test_writer_returns_draft():
    """Test that the premium tier writes the report."""
    llm = FakeLLM()

    draft = asyncio.run(Writer(llm).write("topic", [finding()], Critique(confidence=0.7)))

    assert draft == DRAFT_REPORT.strip()
    assert llm.calls[0]["tier"] == "premium"
    assert "Critique Analysis" in llm.calls[0]["prompt"]


def test_writer_prompt_numbers_unique_sources():
    """Test that the prompt lists each source URL once, numbered for citation."""
    llm = FakeLLM()
    findings = [
        finding(urls=("https://a.test", "https://b.test")),
        finding(urls=("https://b.test", "https://c.test")),
    ]

    asyncio.run(Writer(llm).write("topic", findings))

    prompt = llm.calls[0]["prompt"]
    source_list = prompt.split("Sources (cite by number):\n", 1)[1]
    assert "[1] https://a.test - https://a.test" in source_list
    assert "[2] https://b.test - https://b.test" in source_list
    assert "[3] https://c.test - https://c.test" in source_list
    assert "[4]" not in source_list


def test_writer_rejects_short_report():
    """Test the minimum length check."""
    with pytest.raises(WritingError, match="too short or empty"):
        asyncio.run(Writer(FakeLLM(write="## Executive Summary\nTiny.")).write("topic", [finding()]))


def test_writer_keeps_report_missing_sections():
    """Test that missing headings are tolerated."""
    body = "Plain prose without headings. " * 30

    draft = asyncio.run(Writer(FakeLLM(write=body)).write("topic", [finding()]))

    assert draft == body.strip()
    assert missing_sections(draft) == ["executive_summary", "introduction", "sources"]


def test_writer_helpers():
    findings = [
        finding(urls=("https://a.test", "https://b.test")),
        finding(urls=("https://b.test", "https://c.test")),
    ]

    assert [s.url for s in extract_sources(findings)] == [
        "https://a.test",
        "https://b.test",
        "https://c.test",
    ]
    assert estimate_word_count("## Title\n\nSee [the docs](https://x.test) now.\n```\ncode here\n```") == 5


# Reviewer


def test_reviewer_applies_review():
    """Test a well-formed review response."""
    result = asyncio.run(Reviewer(FakeLLM()).review(DRAFT_REPORT))

    assert result.final_report == REVIEWED_REPORT
    assert result.review_summary.changes_count == 1
    assert result.review_summary.categories.clarity_improvements == 1
    assert result.review_summary.overall_quality == "excellent"
    assert result.review_summary.readability_score == 82


def test_reviewer_keeps_draft_on_unparsable_response():
    """Test that the draft survives a bad review."""
    result = asyncio.run(Reviewer(FakeLLM(review="not json")).review(DRAFT_REPORT))

    assert result.final_report == DRAFT_REPORT
    assert result.review_summary.overall_quality == "needs-work"
    assert result.review_summary.readability_score == 50
    assert result.review_summary.changes_count == 0


def test_reviewer_keeps_draft_on_generation_failure():
    llm = FakeLLM(review=GenerationError("down"))

    result = asyncio.run(Reviewer(llm).review(DRAFT_REPORT))

    assert result.final_report == DRAFT_REPORT
    assert result.review_summary.major_changes == ["Review failed - returning original report"]


def test_parse_review_defaults():
    """Test defaults for missing summary fields."""
    result = parse_review_response(json.dumps({"finalReport": "Edited."}), "Draft.")

    assert result.final_report == "Edited."
    assert result.review_summary.overall_quality == "good"
    assert result.review_summary.readability_score == 75

