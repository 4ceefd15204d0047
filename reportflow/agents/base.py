"""Base agent holding the injected capability clients."""

import logging
from typing import Optional

from reportflow.services.capabilities import TextGenerator, WebSearcher

logger = logging.getLogger(__name__)


class BaseAgent:
    """Base class for all agents.

    Agents are stateless: everything they need arrives as call arguments,
    and the capability clients are injected at construction.
    """

    def __init__(self, llm: TextGenerator, search: Optional[WebSearcher] = None):
        """Initialize base agent."""
        self.llm = llm
        self.search = search

    @property
    def name(self) -> str:
        return self.__class__.__name__
