"""Reviewer agent: final editorial pass over the draft."""

import logging
from typing import Any

from reportflow.agents.base import BaseAgent
from reportflow.schemas.artifacts import (
    ReviewCategories,
    ReviewResult,
    ReviewSummary,
)
from reportflow.services.parsing import coerce_str_list, parse_json_response

logger = logging.getLogger(__name__)

QUALITIES = ("excellent", "good", "fair", "needs-work")

SYSTEM_PROMPT = """You are an expert editor and fact-checker for research reports. Review and improve the report for accuracy, clarity, citations, structure and style.

Keep all correct citations and the markdown formatting. Do not over-edit or change the author's voice.

Return ONLY valid JSON:
{
  "finalReport": "the complete improved markdown report",
  "reviewSummary": {
    "changesCount": 0,
    "categories": {"factualCorrections": 0, "clarityImprovements": 0, "citationFixes": 0, "structuralChanges": 0, "styleEnhancements": 0},
    "majorChanges": ["..."],
    "overallQuality": "excellent" | "good" | "fair" | "needs-work",
    "readabilityScore": 0-100
  }
}"""


def unreviewed(draft: str, reason: str) -> ReviewResult:
    """Return the draft untouched with a minimal needs-work summary."""
    return ReviewResult(
        final_report=draft,
        review_summary=ReviewSummary(
            changes_count=0,
            major_changes=[reason],
            overall_quality="needs-work",
            readability_score=50,
        ),
    )


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class Reviewer(BaseAgent):
    """Agent for the final review.

    Never loses the draft: any failure returns it unchanged.
    """

    async def review(self, draft: str, tier: str = "basic") -> ReviewResult:
        """Review and polish a draft report."""
        prompt = f"""Review and improve this research report:

{draft}

Return the improved version with a detailed review summary. Return ONLY valid JSON."""

        try:
            response = await self.llm.generate(
                prompt,
                system=SYSTEM_PROMPT,
                temperature=0.3,
                tier=tier,
            )
        except Exception as e:
            logger.error(f"Report review failed, keeping draft: {e}")
            return unreviewed(draft, "Review failed - returning original report")

        result = parse_review_response(response, draft)

        if len(result.final_report) < len(draft) * 0.5:
            logger.warning("Reviewed report is significantly shorter than original")

        return result


def parse_review_response(text: str, draft: str) -> ReviewResult:
    """
    Parse a reviewer response, falling back to the draft.

    Args:
        text: Raw model output
        draft: The draft that was reviewed

    Returns:
        Parsed review, or the draft with a needs-work summary
    """
    parsed = parse_json_response(text, None)
    if not isinstance(parsed, dict):
        logger.error("Failed to parse review response")
        return unreviewed(draft, "Review parsing failed - returning original report")

    final_report = parsed.get("finalReport")
    if not isinstance(final_report, str) or not final_report.strip():
        final_report = draft

    summary = parsed.get("reviewSummary")
    if not isinstance(summary, dict):
        summary = {}
    categories = summary.get("categories")
    if not isinstance(categories, dict):
        categories = {}

    quality = summary.get("overallQuality")
    readability = summary.get("readabilityScore")
    readability = _count(readability) if readability is not None else 75

    return ReviewResult(
        final_report=final_report,
        review_summary=ReviewSummary(
            changes_count=_count(summary.get("changesCount")),
            categories=ReviewCategories(
                factual_corrections=_count(categories.get("factualCorrections")),
                clarity_improvements=_count(categories.get("clarityImprovements")),
                citation_fixes=_count(categories.get("citationFixes")),
                structural_changes=_count(categories.get("structuralChanges")),
                style_enhancements=_count(categories.get("styleEnhancements")),
            ),
            major_changes=coerce_str_list(summary.get("majorChanges")),
            overall_quality=quality if quality in QUALITIES else "good",
            readability_score=min(readability, 100),
        ),
    )
