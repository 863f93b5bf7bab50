"""Asynchronous job models."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class JobState(str, Enum):
    """Lifecycle of a placeholder-wrapped unit of work."""
    IDLE = "idle"
    PLACEHOLDER_POSTED = "placeholder_posted"
    WORK_SUCCEEDED = "work_succeeded"
    WORK_FAILED = "work_failed"
    PLACEHOLDER_CLEARED = "placeholder_cleared"
    RESULT_DELIVERED = "result_delivered"


@dataclass
class PendingJob:
    """A unit of asynchronous work shown to the user through a transient placeholder."""
    name: str
    started_at: float = field(default_factory=time.time)
    placeholder_handle: Optional[Any] = None
    state: JobState = JobState.IDLE
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    placeholder_cleared: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.state != JobState.IDLE


@dataclass
class UploadResult:
    """Normalized outcome of a Slack file upload."""
    file_id: Optional[str] = None
    method: str = ""

    @property
    def ok(self) -> bool:
        return self.file_id is not None
