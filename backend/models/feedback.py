"""Feedback data models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet, Optional

POSITIVE_SCORE = 1
NEGATIVE_SCORE = 0


@dataclass(frozen=True)
class FeedbackRecord:
    """User feedback attached to a previously issued turn id."""
    turn_id: Optional[str]
    score: int  # 1 = helpful, 0 = not helpful
    categories: FrozenSet[str] = frozenset()
    comment: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def attachable(self) -> bool:
        """Whether the record can be attached to a trace."""
        return bool(self.turn_id) and self.turn_id != "pending"
