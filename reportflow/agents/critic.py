"""Critic agent: reviews findings for gaps, biases and contradictions."""

import logging
from typing import Any, List

from reportflow.agents.base import BaseAgent
from reportflow.schemas.artifacts import Critique, ResearchFinding
from reportflow.services.parsing import coerce_str_list, normalize_confidence, parse_json_response

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a critical research analyst reviewing research findings for quality, completeness and objectivity.

Identify:
1. Gaps: missing topics, perspectives or information
2. Biases: one-sided views, cherry-picked data, unsupported claims
3. Contradictions: inconsistencies within or between findings
4. Suggestions: follow-up questions or angles to investigate

Be specific and constructive. Return ONLY valid JSON:
{"confidence": 0.8, "gaps": [], "biases": [], "contradictions": [], "suggestions": [], "overallAssessment": "..."}"""


def unparsed_critique() -> Critique:
    """Critique used when the response is not valid JSON."""
    return Critique(
        confidence=0.5,
        gaps=["Unable to generate critique"],
        overall_assessment="Critique generation failed",
    )


def degraded_critique() -> Critique:
    """Critique used when the generation call itself failed."""
    return Critique(
        confidence=0.3,
        gaps=["Unable to complete critique due to technical error"],
        suggestions=["Retry the critique process"],
        overall_assessment="Critique failed due to technical error",
    )


class Critic(BaseAgent):
    """Agent for critiquing research findings.

    Never raises for a failed generation call: a critique failure must not
    abort the run.
    """

    async def critique(
        self,
        findings: List[ResearchFinding],
        topic: str,
        tier: str = "basic",
        temperature: float = 0.7,
    ) -> Critique:
        """Critique findings for a topic."""
        research_summary = "\n---\n".join(
            f"Finding {idx + 1}:\n"
            f"Question: {f.question}\n"
            f"Answer: {f.answer}\n"
            f"Confidence: {f.confidence}\n"
            "Sources:\n" + "\n".join(f"  - {s.title} ({s.url})" for s in f.sources)
            for idx, f in enumerate(findings)
        )

        prompt = f"""Topic: {topic}

Review the following research findings and provide a critical analysis:

{research_summary}

Analyze these findings for gaps, biases, contradictions and suggestions regarding "{topic}".
Provide your critique in valid JSON format."""

        try:
            response = await self.llm.generate(
                prompt,
                system=SYSTEM_PROMPT,
                temperature=temperature,
                tier=tier,
                retries=3,
            )
        except Exception as e:
            logger.error(f"Failed to critique research: {e}")
            return degraded_critique()

        parsed = parse_json_response(response, None)
        if not isinstance(parsed, dict):
            return unparsed_critique()

        critique = self._build_critique(parsed)
        if not validate_critique(critique):
            logger.warning("Critique has no findings or no overall assessment")
        return critique

    def _build_critique(self, data: Any) -> Critique:
        assessment = data.get("overallAssessment") or data.get("overall_assessment")
        return Critique(
            confidence=normalize_confidence(data.get("confidence"), default=0.5),
            gaps=coerce_str_list(data.get("gaps")),
            biases=coerce_str_list(data.get("biases")),
            contradictions=coerce_str_list(data.get("contradictions")),
            suggestions=coerce_str_list(data.get("suggestions")),
            overall_assessment=assessment if isinstance(assessment, str) else "",
        )


def validate_critique(critique: Critique) -> bool:
    """Whether a critique has content, a valid confidence and an assessment."""
    has_content = bool(
        critique.gaps or critique.biases or critique.contradictions or critique.suggestions
    )
    has_valid_confidence = 0 <= critique.confidence <= 1
    return has_content and has_valid_confidence and bool(critique.overall_assessment)

