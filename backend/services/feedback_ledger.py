"""Feedback ledger: thumbs up/down and modal feedback against a turn id."""
import logging
from collections import deque
from typing import Deque, Iterable, List, Optional

from models.feedback import FeedbackRecord, POSITIVE_SCORE, NEGATIVE_SCORE
from services.telemetry import TelemetrySink

logger = logging.getLogger(__name__)

MAX_LOCAL_RECORDS = 1000


class FeedbackLedger:
    """
    Records user feedback locally and forwards it to the telemetry sink.

    Delivery is at-least-once: duplicate clicks produce duplicate records
    and the telemetry backend remains the source of truth for counts.
    """

    def __init__(self, telemetry: TelemetrySink, max_records: int = MAX_LOCAL_RECORDS):
        self.telemetry = telemetry
        self._records: Deque[FeedbackRecord] = deque(maxlen=max_records)

    async def record_positive(self, turn_id: Optional[str], user_id: Optional[str] = None) -> FeedbackRecord:
        record = FeedbackRecord(
            turn_id=turn_id,
            score=POSITIVE_SCORE,
            comment="User found response helpful",
            user_id=user_id,
        )
        await self._record(record, value="positive")
        return record

    async def record_negative(
        self,
        turn_id: Optional[str],
        categories: Iterable[str] = (),
        comment: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> FeedbackRecord:
        """
        Record negative feedback. Both ``categories`` and ``comment`` are optional.
        """
        comment = (comment or "").strip() or None
        record = FeedbackRecord(
            turn_id=turn_id,
            score=NEGATIVE_SCORE,
            categories=frozenset(c for c in categories if c),
            comment=comment or "User found response not helpful",
            user_id=user_id,
        )
        await self._record(record, value="negative")
        return record

    async def _record(self, record: FeedbackRecord, value: str) -> None:
        self._records.append(record)
        logger.info(f"{value.capitalize()} feedback received for turn {record.turn_id} from user {record.user_id}")

        if not record.attachable:
            logger.warning("Feedback has no turn id; kept locally but not attached to a trace")
            return

        try:
            await self.telemetry.record_feedback(
                record.turn_id,
                score=record.score,
                comment=record.comment,
                value=value,
                source_info={"categories": sorted(record.categories), "user_id": record.user_id},
            )
        except Exception as e:
            logger.error(f"Failed to forward feedback for turn {record.turn_id}: {e}")

    def records_for(self, turn_id: str) -> List[FeedbackRecord]:
        return [record for record in self._records if record.turn_id == turn_id]

    def __len__(self) -> int:
        return len(self._records)
