"""Exception hierarchy for the report pipeline."""

from typing import Optional


class ReportflowError(Exception):
    """Base class for all reportflow errors."""


# Capability layer
class CapabilityError(ReportflowError):
    """An external capability (generation, search) failed."""


class GenerationError(CapabilityError):
    """Text generation failed after exhausting retries."""


class SearchError(CapabilityError):
    """Web search returned an error or could not be called."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# Agent layer
class AgentError(ReportflowError):
    """An agent could not produce a usable artifact."""


class PlanningError(AgentError):
    """The planner produced no usable research plan."""


class PlanValidationError(PlanningError):
    """The planner's parsed response violated the plan constraints."""


class ResearchError(AgentError):
    """Every research question failed."""


class WritingError(AgentError):
    """The writer produced an empty or trivial report."""


# Workflow layer
class WorkflowError(ReportflowError):
    """Base class for engine-level outcomes."""


class RunCancelled(WorkflowError):
    """The run was cancelled or its record disappeared."""

    def __init__(self, report_id):
        super().__init__(f"Run {report_id} was cancelled")
        self.report_id = report_id


class PhaseFailed(WorkflowError):
    """A phase exhausted its retries."""

    def __init__(self, phase: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.phase = phase
        self.message = message
        self.cause = cause


# Request boundary
class TopicValidationError(ReportflowError):
    """The submitted topic is invalid; ``code`` is an error code."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class InsufficientCreditsError(ReportflowError):
    """The caller has no credits left."""
