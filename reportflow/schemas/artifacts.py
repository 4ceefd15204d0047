"""Versioned artifact schemas written to the report record by each phase."""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ARTIFACT_SCHEMA_VERSION = 1

Tier = Literal["basic", "premium"]
Depth = Literal["shallow", "medium", "deep"]
Quality = Literal["excellent", "good", "fair", "needs-work"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Artifact(BaseModel):
    """Base for persisted artifacts."""

    schema_version: int = ARTIFACT_SCHEMA_VERSION


# Planner
class ResearchPlan(Artifact):
    """Output of the planning phase."""

    questions: List[str]
    areas: List[str] = Field(default_factory=list)
    approach: str = ""
    estimated_depth: Depth = "medium"


# Researcher
class SearchResult(BaseModel):
    """A single web search hit."""

    title: str
    url: str
    snippet: str
    published_date: Optional[str] = None
    score: Optional[float] = None


class ResearchFinding(BaseModel):
    """Synthesized answer to one research question."""

    question: str
    answer: str
    sources: List[SearchResult]
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: str = Field(default_factory=utc_now_iso)


class QuestionFailure(BaseModel):
    """A research question that produced no finding."""

    question: str
    error: str


class ResearchSummary(BaseModel):
    """Aggregate statistics over a research phase."""

    total_questions: int
    successful_researches: int
    average_confidence: float
    total_sources: int


class ResearchOutput(Artifact):
    """Output of the research phase."""

    findings: List[ResearchFinding]
    summary: ResearchSummary
    errors: List[QuestionFailure] = Field(default_factory=list)


# Critic
class Critique(Artifact):
    """Critical review of the research findings."""

    confidence: float = Field(ge=0.0, le=1.0)
    gaps: List[str] = Field(default_factory=list)
    biases: List[str] = Field(default_factory=list)
    contradictions: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    overall_assessment: str = ""


# Reviewer
class ReviewCategories(BaseModel):
    """Number of edits per category."""

    factual_corrections: int = 0
    clarity_improvements: int = 0
    citation_fixes: int = 0
    structural_changes: int = 0
    style_enhancements: int = 0


class ReviewSummary(BaseModel):
    """Editor's summary of the review pass."""

    changes_count: int = 0
    categories: ReviewCategories = Field(default_factory=ReviewCategories)
    major_changes: List[str] = Field(default_factory=list)
    overall_quality: Quality = "good"
    readability_score: int = Field(default=75, ge=0, le=100)


class ReviewResult(BaseModel):
    """Output of the review phase."""

    final_report: str
    review_summary: ReviewSummary


class ReportMetadata(Artifact):
    """Metadata written with the final report."""

    review_summary: ReviewSummary
    word_count: int
    source_count: int
