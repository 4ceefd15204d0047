"""Interfaces of the external capabilities consumed by agents."""

from typing import List, Optional, Protocol

from reportflow.schemas.artifacts import SearchResult


class TextGenerator(Protocol):
    """Generates text for a prompt under a quality tier, with retry."""

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        tier: str = "basic",
        retries: Optional[int] = None,
    ) -> str:
        ...


class WebSearcher(Protocol):
    """Searches the web and returns ranked snippets."""

    async def search(self, query: str, max_results: int = 5) -> List[SearchResult]:
        ...
