"""Durable workflow engine driving one report through the agent pipeline."""

import dataclasses
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from reportflow.agents.critic import Critic
from reportflow.agents.planner import ResearchPlanner
from reportflow.agents.researcher import Researcher
from reportflow.agents.reviewer import Reviewer
from reportflow.agents.writer import Writer, estimate_word_count
from reportflow.config import settings
from reportflow.exceptions import (
    GenerationError,
    PhaseFailed,
    PlanningError,
    ResearchError,
    RunCancelled,
    SearchError,
    WritingError,
)
from reportflow.models.report import ReportStatus
from reportflow.schemas.artifacts import (
    Critique,
    ReportMetadata,
    ResearchOutput,
    ResearchPlan,
    ReviewResult,
)
from reportflow.services.cancellation import CancellationRegistry
from reportflow.services.report_store import ReportStore
from reportflow.services.retry import RetryPolicy

logger = logging.getLogger(__name__)


class RunOutcome(str, enum.Enum):
    """How a workflow run ended."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Phase:
    """A named, independently retryable step."""

    name: str
    label: str
    status: ReportStatus


PLAN = Phase("plan-research", "Planning", ReportStatus.PLANNING)
RESEARCH = Phase("conduct-research", "Research", ReportStatus.RESEARCHING)
CRITIQUE = Phase("critique-research", "Critique", ReportStatus.CRITIQUING)
WRITE = Phase("write-report", "Writing", ReportStatus.WRITING)
REVIEW = Phase("review-report", "Review", ReportStatus.FORMATTING)

PHASES = (PLAN, RESEARCH, CRITIQUE, WRITE, REVIEW)


def is_rate_limited(exc: BaseException) -> bool:
    """Whether a 429 response appears anywhere in the exception's cause chain."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, SearchError) and exc.status_code == 429:
            return True
        if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
            return True
        exc = exc.__cause__ or exc.__context__
    return False


def classify_error(phase: Phase, exc: BaseException) -> str:
    """
    Human-readable failure message for a phase.

    Only a generic category is exposed; the underlying error text stays in
    the server logs.
    """
    if is_rate_limited(exc):
        category = "rate limit exceeded"
    elif isinstance(exc, ResearchError):
        category = "no research findings could be gathered"
    elif isinstance(exc, PlanningError):
        category = "could not produce a research plan"
    elif isinstance(exc, WritingError):
        category = "report draft was empty"
    elif isinstance(exc, SearchError):
        category = "web search unavailable"
    elif isinstance(exc, GenerationError):
        category = "text generation unavailable"
    else:
        category = "internal error"
    return f"{phase.label} failed: {category}"


class ReportWorkflow:
    """Runs Plan -> Research -> Critique -> Write -> Review for one report.

    Each phase writes its in-progress status before it starts and persists
    its artifact before the next phase begins. A phase that raises is retried
    under ``phase_policy``; when attempts run out the report is marked
    FAILED and nothing further runs. Cancellation is observed before every
    phase attempt and after every phase; a cancelled run writes nothing more.
    """

    def __init__(
        self,
        store: ReportStore,
        planner: ResearchPlanner,
        researcher: Researcher,
        critic: Critic,
        writer: Writer,
        reviewer: Reviewer,
        cancellations: Optional[CancellationRegistry] = None,
        phase_policy: Optional[RetryPolicy] = None,
        research_parallel: Optional[bool] = None,
        max_sources: Optional[int] = None,
    ):
        self.store = store
        self.planner = planner
        self.researcher = researcher
        self.critic = critic
        self.writer = writer
        self.reviewer = reviewer
        self.cancellations = cancellations or CancellationRegistry()
        policy = phase_policy or RetryPolicy(
            max_attempts=settings.PHASE_MAX_ATTEMPTS,
            base_delay=settings.PHASE_RETRY_BASE_DELAY,
            max_delay=settings.PHASE_RETRY_MAX_DELAY,
        )
        # Cancellation is an outcome, never a reason to retry
        self.phase_policy = dataclasses.replace(
            policy, give_up_on=tuple(policy.give_up_on) + (RunCancelled,), name="phase"
        )
        self.research_parallel = (
            settings.RESEARCH_PARALLEL if research_parallel is None else research_parallel
        )
        self.max_sources = max_sources or settings.RESEARCH_MAX_SOURCES

    async def run(self, report_id, topic: str) -> RunOutcome:
        """
        Execute the pipeline for a report.

        Artifacts already stored on the record (plan, findings, critique)
        are reused, so a re-claimed run continues where it stopped.

        Args:
            report_id: Report id
            topic: Sanitized topic

        Returns:
            The run outcome
        """
        logger.info(f"Starting workflow for report {report_id}")
        try:
            report = await self.store.get(report_id)
            if report is None or report.status.is_terminal:
                raise RunCancelled(report_id)

            plan = self._load(ResearchPlan, report.research_plan)
            if plan is None:
                plan = await self._step(report_id, PLAN, self.planner.plan, topic)
                await self._persist(report_id, research_plan=plan)

            research = self._load(ResearchOutput, report.findings)
            if research is None:
                research = await self._step(
                    report_id,
                    RESEARCH,
                    self.researcher.research,
                    plan.questions,
                    parallel=self.research_parallel,
                    max_sources=self.max_sources,
                    tier="basic",
                )
                await self._persist(report_id, findings=research)

            critique = self._load(Critique, report.critique)
            if critique is None:
                critique = await self._step(
                    report_id, CRITIQUE, self.critic.critique, research.findings, topic, tier="basic"
                )
                await self._persist(report_id, critique=critique)

            draft = await self._step(
                report_id, WRITE, self.writer.write, topic, research.findings, critique, tier="premium"
            )

            reviewed = await self._step(report_id, REVIEW, self.reviewer.review, draft, tier="basic")
            await self._finish(report_id, reviewed, research)

        except RunCancelled:
            logger.info(f"Workflow for report {report_id} stopped: cancelled")
            return RunOutcome.CANCELLED

        except PhaseFailed as e:
            logger.error(f"Workflow for report {report_id} failed in {e.phase}: {e.cause}")
            if self.cancellations.is_cancelled(report_id):
                return RunOutcome.CANCELLED
            if not await self.store.fail(report_id, e.message):
                # Cancelled (or deleted) while the phase was failing
                return RunOutcome.CANCELLED
            return RunOutcome.FAILED

        finally:
            self.cancellations.discard(report_id)

        return RunOutcome.COMPLETED

    @staticmethod
    def _load(model, data):
        if not data:
            return None
        return model.model_validate(data)

    async def _check_cancelled(self, report_id) -> None:
        """Raise RunCancelled if a signal arrived or the record is terminal/gone."""
        if self.cancellations.is_cancelled(report_id):
            raise RunCancelled(report_id)
        status = await self.store.status(report_id)
        if status is None or status.is_terminal:
            raise RunCancelled(report_id)

    async def _step(
        self, report_id, phase: Phase, fn: Callable[..., Awaitable[Any]], *args, **kwargs
    ) -> Any:
        """Run one phase: status write, retried execution, cancellation re-check."""
        await self._check_cancelled(report_id)

        if not await self.store.advance_status(report_id, phase.status):
            # Not applied: either already at/after this status (resumed run)
            # or the record became terminal/disappeared
            status = await self.store.status(report_id)
            if status is None or status.is_terminal:
                raise RunCancelled(report_id)

        async def attempt():
            await self._check_cancelled(report_id)
            return await fn(*args, **kwargs)

        logger.info(f"Report {report_id}: running {phase.name}")
        try:
            result = await self.phase_policy.call(attempt)
        except RunCancelled:
            raise
        except Exception as e:
            logger.error(f"Report {report_id}: {phase.name} exhausted retries: {e}", exc_info=True)
            raise PhaseFailed(phase.name, classify_error(phase, e), cause=e) from e

        # The result of an in-flight call is discarded once cancelled
        await self._check_cancelled(report_id)
        return result

    async def _persist(self, report_id, **artifacts) -> None:
        if not await self.store.save_artifacts(report_id, **artifacts):
            raise RunCancelled(report_id)

    async def _finish(self, report_id, reviewed: ReviewResult, research: ResearchOutput) -> None:
        """Final transition: report, metadata, completed_at and COMPLETED together."""
        metadata = ReportMetadata(
            review_summary=reviewed.review_summary,
            word_count=estimate_word_count(reviewed.final_report),
            source_count=research.summary.total_sources,
        )
        if not await self.store.complete(report_id, reviewed.final_report, metadata):
            raise RunCancelled(report_id)
