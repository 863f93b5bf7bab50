"""Data models for the Data Slack bot."""
from .conversation import ChatMessage, ConversationTurn, TurnResult, USER_ROLE, ASSISTANT_ROLE
from .guardrail import GuardrailCategory, GuardrailVerdict
from .job import JobState, PendingJob, UploadResult
from .feedback import FeedbackRecord, POSITIVE_SCORE, NEGATIVE_SCORE

__all__ = [
    "ChatMessage",
    "ConversationTurn",
    "TurnResult",
    "USER_ROLE",
    "ASSISTANT_ROLE",
    "GuardrailCategory",
    "GuardrailVerdict",
    "JobState",
    "PendingJob",
    "UploadResult",
    "FeedbackRecord",
    "POSITIVE_SCORE",
    "NEGATIVE_SCORE",
]
