"""Researcher agent: web search plus synthesis per question."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Tuple

from reportflow.agents.base import BaseAgent
from reportflow.exceptions import ResearchError
from reportflow.schemas.artifacts import (
    QuestionFailure,
    ResearchFinding,
    ResearchOutput,
    ResearchSummary,
    SearchResult,
)
from reportflow.services.capabilities import TextGenerator, WebSearcher
from reportflow.services.parsing import normalize_confidence, parse_json_response

logger = logging.getLogger(__name__)

SYNTHESIS_PROMPT = """You are an expert research analyst. Synthesize information from multiple sources into an accurate answer.

Guidelines:
- Directly address the question using the provided sources
- Integrate information across sources and note contradictions
- Be specific: cite concrete facts, data and examples
- Acknowledge limitations when sources are insufficient

Return ONLY valid JSON:
{"answer": "2-4 paragraphs", "confidence": 0.85, "keyFindings": ["..."], "limitations": "..."}"""

SYNTHESIS_FALLBACK = {
    "answer": "Unable to synthesize findings from sources.",
    "confidence": 0.3,
}


class Researcher(BaseAgent):
    """Agent for researching a list of questions."""

    def __init__(
        self,
        llm: TextGenerator,
        search: WebSearcher,
        question_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(llm, search)
        self.question_delay = question_delay
        self.sleep = sleep

    async def research(
        self,
        questions: List[str],
        parallel: bool = False,
        max_sources: int = 5,
        tier: str = "basic",
    ) -> ResearchOutput:
        """
        Research each question and collect findings.

        A question with no sources, or whose synthesis fails, is recorded as a
        failure and the remaining questions continue.

        Args:
            questions: Research questions
            parallel: Research all questions concurrently
            max_sources: Source cap per question
            tier: Model tier for synthesis

        Returns:
            Findings with summary statistics

        Raises:
            ResearchError: If no questions were given or every question failed
        """
        if not questions:
            raise ResearchError("No research questions provided")

        logger.info(f"Starting research for {len(questions)} questions (parallel={parallel})")

        if parallel:
            results = await asyncio.gather(
                *(self.research_question(q, max_sources, tier) for q in questions),
                return_exceptions=True,
            )
        else:
            results = []
            for i, question in enumerate(questions):
                logger.info(f"Researching question {i + 1}/{len(questions)}")
                try:
                    results.append(await self.research_question(question, max_sources, tier))
                except Exception as e:
                    results.append(e)

                # Space out requests to respect downstream rate limits
                if i < len(questions) - 1:
                    await self.sleep(self.question_delay)

        findings, errors = self._partition(questions, results)
        summary = summarize(questions, findings)
        logger.info(
            f"Research complete: {summary.successful_researches}/{summary.total_questions} questions, "
            f"{summary.total_sources} sources"
        )

        if errors:
            logger.warning(f"{len(errors)} questions failed")

        if not findings:
            details = "; ".join(e.error for e in errors)
            last_error = next((r for r in reversed(results) if isinstance(r, Exception)), None)
            raise ResearchError(f"All research questions failed. Errors: {details}") from last_error

        return ResearchOutput(findings=findings, summary=summary, errors=errors)

    def _partition(
        self, questions: List[str], results: List[Any]
    ) -> Tuple[List[ResearchFinding], List[QuestionFailure]]:
        findings = []
        errors = []
        for question, result in zip(questions, results):
            if isinstance(result, ResearchFinding):
                findings.append(result)
            elif isinstance(result, Exception):
                logger.error(f"Failed to research question {question!r}: {result}")
                errors.append(QuestionFailure(question=question, error=str(result)))
            else:
                # gather(return_exceptions=True) also surfaces BaseExceptions
                raise result
        return findings, errors

    async def research_question(
        self, question: str, max_sources: int = 5, tier: str = "basic"
    ) -> ResearchFinding:
        """Search for sources and synthesize an answer for one question."""
        sources = await self.search.search(question, max_results=max_sources)
        if not sources:
            raise ResearchError("No sources found for this question")

        logger.info(f"{len(sources)} sources found, synthesizing")
        answer, confidence = await self.synthesize(question, sources, tier)

        return ResearchFinding(
            question=question,
            answer=answer,
            sources=sources,
            confidence=confidence,
        )

    async def synthesize(
        self, question: str, sources: List[SearchResult], tier: str = "basic"
    ) -> Tuple[str, float]:
        """Synthesize an answer and a confidence in [0, 1] from sources."""
        source_context = "\n---\n".join(
            f"SOURCE {idx + 1}: {s.title}\n"
            f"URL: {s.url}\n"
            + (f"Published: {s.published_date}\n" if s.published_date else "")
            + f"Content: {s.snippet}\n"
            f"Relevance Score: {s.score if s.score is not None else 'N/A'}"
            for idx, s in enumerate(sources)
        )

        prompt = f"""Question: {question}

Available Sources:
{source_context}

Synthesize the above sources into a comprehensive answer to the question. Return ONLY valid JSON."""

        response = await self.llm.generate(
            prompt,
            system=SYNTHESIS_PROMPT,
            temperature=0.6,
            tier=tier,
        )

        synthesis = parse_json_response(response, SYNTHESIS_FALLBACK)
        if not isinstance(synthesis, dict):
            synthesis = SYNTHESIS_FALLBACK

        answer = synthesis.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            answer = SYNTHESIS_FALLBACK["answer"]

        return answer, normalize_confidence(synthesis.get("confidence"), default=0.5)


def summarize(questions: List[str], findings: List[ResearchFinding]) -> ResearchSummary:
    """Aggregate statistics for a research phase."""
    total_sources = sum(len(f.sources) for f in findings)
    average = sum(f.confidence for f in findings) / len(findings) if findings else 0.0
    return ResearchSummary(
        total_questions=len(questions),
        successful_researches=len(findings),
        average_confidence=round(average, 2),
        total_sources=total_sources,
    )
