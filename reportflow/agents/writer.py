"""Writer agent: turns findings into a markdown report."""

import logging
import re
from typing import Dict, List, Optional

from reportflow.agents.base import BaseAgent
from reportflow.exceptions import WritingError
from reportflow.schemas.artifacts import Critique, ResearchFinding, SearchResult

logger = logging.getLogger(__name__)

MIN_REPORT_LENGTH = 500

EXPECTED_SECTIONS = {
    "executive_summary": re.compile(r"##\s*Executive Summary", re.IGNORECASE),
    "introduction": re.compile(r"##\s*Introduction", re.IGNORECASE),
    "sources": re.compile(r"##\s*Sources", re.IGNORECASE),
}

SYSTEM_PROMPT = """You are a professional research analyst and technical writer. Synthesize research findings into a comprehensive, well-structured markdown report.

Report structure:
## Executive Summary
## Introduction
## Main Findings (### subsections by theme or question)
## Analysis
## Conclusion
## Sources (numbered list with title and URL)

Use inline citations [1], [2] for every factual claim, stay objective, address gaps named in the critique, and aim for 1500-2500 words."""


class Writer(BaseAgent):
    """Agent for writing the report draft."""

    async def write(
        self,
        topic: str,
        findings: List[ResearchFinding],
        critique: Optional[Critique] = None,
        tier: str = "premium",
    ) -> str:
        """
        Write a markdown report.

        Args:
            topic: Research topic
            findings: Research findings
            critique: Optional critique to address
            tier: Model tier

        Returns:
            Markdown report body

        Raises:
            WritingError: If the report is empty or shorter than 500 characters
        """
        findings_summary = "\n---\n\n".join(
            f"Question {idx + 1}: {f.question}\n"
            f"Answer: {f.answer}\n"
            f"Confidence: {f.confidence * 100:.0f}%\n"
            "Sources:\n"
            + "\n".join(f"  - [{s.title}]({s.url})\n    {s.snippet}" for s in f.sources)
            for idx, f in enumerate(findings)
        )

        source_list = "\n".join(
            f"[{idx + 1}] {s.title} - {s.url}" for idx, s in enumerate(extract_sources(findings))
        )

        critique_summary = ""
        if critique is not None:
            critique_summary = f"""
Critique Analysis:
- Overall Confidence: {critique.confidence * 100:.0f}%
- Identified Gaps: {'; '.join(critique.gaps)}
- Suggestions: {'; '.join(critique.suggestions)}
- Potential Biases: {'; '.join(critique.biases)}
- Contradictions: {'; '.join(critique.contradictions)}
- Assessment: {critique.overall_assessment}
"""

        prompt = f"""Write a comprehensive research report on the following topic:

Topic: {topic}

Research Findings:
{findings_summary}

Sources (cite by number):
{source_list}
{critique_summary}
Return ONLY the markdown-formatted report. No preamble or meta-commentary."""

        response = await self.llm.generate(
            prompt,
            system=SYSTEM_PROMPT,
            temperature=0.7,
            tier=tier,
        )

        report = (response or "").strip()
        if len(report) < MIN_REPORT_LENGTH:
            raise WritingError("Generated report is too short or empty")

        missing = missing_sections(report)
        if missing:
            # Models often vary heading wording; keep the draft
            logger.warning(f"Report may be missing sections: {', '.join(missing)}")

        return report


def missing_sections(report: str) -> List[str]:
    """Names of conventionally expected headings absent from a report."""
    return [name for name, pattern in EXPECTED_SECTIONS.items() if not pattern.search(report)]


def extract_sources(findings: List[ResearchFinding]) -> List[SearchResult]:
    """Unique sources across findings, first occurrence wins per URL."""
    sources: Dict[str, SearchResult] = {}
    for finding in findings:
        for source in finding.sources:
            if source.url not in sources:
                sources[source.url] = source
    return list(sources.values())


def estimate_word_count(markdown: str) -> int:
    """Count words in markdown, ignoring code blocks, link targets and markup."""
    text = re.sub(r"```[\s\S]*?```", "", markdown)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"[#*_~`]", "", text)
    return len(text.split())
