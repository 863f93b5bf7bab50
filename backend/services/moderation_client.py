"""Content moderation backed by the OpenAI moderation endpoint."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from config import OPENAI_API_KEY, MODERATION_MODEL

logger = logging.getLogger(__name__)


class ModerationServiceError(Exception):
    """Raised when the moderation endpoint cannot be reached or errors."""


@dataclass
class ModerationResult:
    """Outcome of classifying one message."""
    flagged: bool
    categories: List[str] = field(default_factory=list)
    scores: Dict[str, float] = field(default_factory=dict)


class ModerationClient:
    """Classifies text against the provider's content policy."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = MODERATION_MODEL,
        client: Optional[AsyncOpenAI] = None
    ):
        self.api_key = api_key or OPENAI_API_KEY
        if not self.api_key and client is None:
            raise ValueError("OPENAI_API_KEY must be provided or set in environment")

        self.model = model
        self.client = client or AsyncOpenAI(api_key=self.api_key)
        logger.info(f"ModerationClient initialized with model {self.model}")

    async def moderate(self, text: str) -> ModerationResult:
        """
        Classify ``text``.

        Returns:
            ModerationResult with the flagged categories and their scores

        Raises:
            ModerationServiceError: if the moderation call fails
        """
        try:
            response = await self.client.moderations.create(model=self.model, input=text)
        except Exception as e:
            raise ModerationServiceError(f"Moderation request failed: {e}") from e

        result = response.results[0]
        if not result.flagged:
            return ModerationResult(flagged=False)

        flags = result.categories.model_dump()
        all_scores = result.category_scores.model_dump()
        categories = sorted(name for name, hit in flags.items() if hit)
        scores = {name: float(all_scores.get(name) or 0.0) for name in categories}
        return ModerationResult(flagged=True, categories=categories, scores=scores)
