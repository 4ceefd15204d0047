"""Research planner agent."""

import logging
from typing import Any, Dict

from reportflow.agents.base import BaseAgent
from reportflow.exceptions import GenerationError, PlanningError, PlanValidationError
from reportflow.schemas.artifacts import ResearchPlan
from reportflow.services.parsing import coerce_str_list, parse_json_response

logger = logging.getLogger(__name__)

MIN_QUESTIONS = 5
MAX_QUESTIONS = 7
MAX_AREAS = 5

SYSTEM_PROMPT = """You are an expert research planner. Break research topics into focused, answerable questions.

Responsibilities:
1. Produce 5-7 focused research questions covering definitions, current state, key players, impacts, challenges and future trends
2. Identify 3-5 key areas to investigate
3. Describe the overall research approach
4. Estimate the depth required: "shallow", "medium" or "deep"

Prefer "how", "what", "why" questions over yes/no questions.

Return ONLY a JSON object:
{"questions": ["..."], "areas": ["..."], "approach": "...", "estimatedDepth": "medium"}"""


def fallback_plan(topic: str) -> ResearchPlan:
    """Deterministic templated plan used when the response cannot be parsed."""
    return ResearchPlan(
        questions=[
            f"What is {topic}?",
            f"What is the current state of {topic}?",
            f"Who are the key players and stakeholders in {topic}?",
            f"What are the main challenges and limitations of {topic}?",
            f"What impact does {topic} have on society and industry?",
            f"What are the future trends and outlook for {topic}?",
        ],
        areas=["Background", "Current state", "Challenges", "Future outlook"],
        approach=f"Survey recent, credible web sources on {topic} question by question and synthesize the findings.",
        estimated_depth="medium",
    )


class ResearchPlanner(BaseAgent):
    """Agent for breaking a topic into research questions."""

    TIER = "basic"

    async def plan(self, topic: str) -> ResearchPlan:
        """
        Create a research plan for a topic.

        Args:
            topic: Sanitized research topic

        Returns:
            Plan with 5-7 questions

        Raises:
            PlanValidationError: If a parsed response has fewer than 5 questions
            PlanningError: If generation fails or no questions remain
        """
        prompt = f"""Create a comprehensive research plan for the following topic:

Topic: {topic}

Generate 5-7 focused research questions and 3-5 key areas to investigate. Return ONLY valid JSON."""

        try:
            response = await self.llm.generate(
                prompt,
                system=SYSTEM_PROMPT,
                temperature=0.7,
                tier=self.TIER,
                retries=3,
            )
        except GenerationError as e:
            raise PlanningError(f"Failed to plan research: {e}") from e

        parsed = parse_json_response(response, None)
        if not isinstance(parsed, dict):
            logger.warning("Planner response could not be parsed, using templated plan")
            plan = fallback_plan(topic)
        else:
            plan = self._build_plan(parsed)

        if not plan.questions:
            raise PlanningError("No research questions generated")

        logger.info(f"Planned {len(plan.questions)} questions ({plan.estimated_depth})")
        return plan

    def _build_plan(self, data: Dict[str, Any]) -> ResearchPlan:
        questions = coerce_str_list(data.get("questions"))
        if len(questions) < MIN_QUESTIONS:
            raise PlanValidationError(
                f"Only {len(questions)} questions generated, need at least {MIN_QUESTIONS}"
            )

        depth = data.get("estimatedDepth") or data.get("estimated_depth")
        if depth not in ("shallow", "medium", "deep"):
            depth = "medium"

        approach = data.get("approach")
        return ResearchPlan(
            questions=questions[:MAX_QUESTIONS],
            areas=coerce_str_list(data.get("areas"))[:MAX_AREAS],
            approach=approach if isinstance(approach, str) else "",
            estimated_depth=depth,
        )
