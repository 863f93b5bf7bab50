"""Telemetry sink for trace events and user feedback (LangSmith)."""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from langsmith import Client

from config import LANGSMITH_PROJECT

logger = logging.getLogger(__name__)

FEEDBACK_KEY = "user-feedback"


class TelemetrySink:
    """
    Append-only, fire-and-forget destination for audit events and feedback.

    Nothing in here is allowed to fail a user-facing turn: every call to
    the LangSmith client runs on the default thread executor and any error
    is logged and dropped.
    """

    def __init__(self, client: Optional[Client] = None, project_name: str = LANGSMITH_PROJECT):
        self.client = client or Client()
        self.project_name = project_name
        self._pending: set = set()
        logger.info(f"TelemetrySink initialized for project {self.project_name}")

    def record_event(
        self,
        name: str,
        tags: Iterable[str],
        metadata: Dict[str, Any],
        run_id: Optional[str] = None
    ) -> None:
        """
        Record a completed chain run named ``name``.

        ``metadata`` must already be free of raw sensitive text; callers
        pass redacted text only. Returns immediately.
        """
        now = datetime.now(timezone.utc)
        event_metadata = dict(metadata)
        if run_id:
            event_metadata["correlation_id"] = run_id
        run_kwargs = {
            "name": name,
            "run_type": "chain",
            "inputs": {"text": metadata.get("text", "")},
            "outputs": {"outcome": metadata.get("outcome", "")},
            "tags": list(tags),
            "extra": {"metadata": event_metadata},
            "project_name": self.project_name,
            "id": uuid.uuid4(),
            "start_time": now,
            "end_time": now,
        }

        self._dispatch(f"event {name}", lambda: self.client.create_run(**run_kwargs))

    async def record_feedback(
        self,
        run_id: str,
        score: int,
        comment: Optional[str] = None,
        value: Optional[str] = None,
        source_info: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Attach feedback to a traced run.

        Returns:
            True when LangSmith accepted the feedback, False otherwise
        """
        try:
            await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.create_feedback(
                    run_id,
                    key=FEEDBACK_KEY,
                    score=score,
                    value=value,
                    comment=comment,
                    source_info=source_info,
                ),
            )
        except Exception as e:
            logger.error(f"Failed to submit feedback for run {run_id}: {e}")
            return False

        logger.info(f"Feedback submitted for run {run_id}: score={score}")
        return True

    def _dispatch(self, label: str, call: Callable[[], Any]) -> None:
        def guarded() -> None:
            try:
                call()
            except Exception as e:
                logger.warning(f"Telemetry {label} dropped: {e}")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside the event loop (scripts, shutdown)
            guarded()
            return

        future = loop.run_in_executor(None, guarded)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for in-flight telemetry calls (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
