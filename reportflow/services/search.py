"""Tavily web search client."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from reportflow.config import settings
from reportflow.exceptions import SearchError
from reportflow.schemas.artifacts import SearchResult

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 300


def make_snippet(content: Optional[str], limit: int = SNIPPET_LENGTH) -> str:
    """Truncate page content to a snippet, marking truncation with '...'."""
    content = content or ""
    if len(content) > limit:
        return content[:limit] + "..."
    return content


class SearchClient:
    """Client for the Tavily search API.

    Non-2xx responses raise ``SearchError`` and are not retried here.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.TAVILY_API_KEY
        self.base_url = (base_url or settings.TAVILY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.SEARCH_TIMEOUT
        self.transport = transport

    def validate_config(self) -> Dict[str, Any]:
        """Check that the API key is usable."""
        if self.api_key is None or self.api_key == "":
            return {"valid": False, "error": "TAVILY_API_KEY is not configured"}
        if self.api_key.strip() == "":
            return {"valid": False, "error": "TAVILY_API_KEY is empty"}
        return {"valid": True}

    async def search(self, query: str, max_results: int = 5) -> List[SearchResult]:
        """
        Search the web for a query.

        Args:
            query: Search query
            max_results: Maximum number of results

        Returns:
            Ranked list of search results

        Raises:
            SearchError: If the key is missing, the call fails, or the API
                returns a non-2xx status
        """
        config = self.validate_config()
        if not config["valid"]:
            raise SearchError(config["error"])

        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "advanced",
            "include_answer": False,
            "include_raw_content": False,
            "max_results": max_results,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/search", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Search request failed for query {query!r}: {e}")
            raise SearchError(f"Web search failed: {e}") from e

        if not response.is_success:
            logger.error(f"Search API error {response.status_code} for query {query!r}")
            raise SearchError(
                f"Web search failed: search API error ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        data = response.json()
        results = []
        for item in data.get("results", [])[:max_results]:
            results.append(
                SearchResult(
                    title=item.get("title") or item.get("url", ""),
                    url=item.get("url", ""),
                    snippet=make_snippet(item.get("content")),
                    published_date=item.get("published_date"),
                    score=item.get("score"),
                )
            )

        logger.info(f"Search returned {len(results)} results")
        return results
