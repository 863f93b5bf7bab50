"""Services for the Data Slack bot."""
from .llm_client import LLMClient, CompletionResult, LLMError, LLMClientError
from .sensitive_data import SensitiveDataClient, SensitiveDataServiceError
from .moderation_client import ModerationClient, ModerationResult, ModerationServiceError
from .telemetry import TelemetrySink
from .guardrail_engine import GuardrailEngine
from .conversation_memory import ConversationMemory
from .turn_processor import TurnProcessor, UserLocks
from .job_runner import AsyncJobRunner
from .slack_transport import SlackTransport
from .image_client import ImageClient, ImageGenerationError
from .image_delivery import ImageDelivery
from .feedback_ledger import FeedbackLedger
from .canned_replies import CannedReplies, CannedReply

__all__ = [
    'LLMClient', 'CompletionResult', 'LLMError', 'LLMClientError',
    'SensitiveDataClient', 'SensitiveDataServiceError',
    'ModerationClient', 'ModerationResult', 'ModerationServiceError',
    'TelemetrySink', 'GuardrailEngine', 'ConversationMemory', 'TurnProcessor', 'UserLocks',
    'AsyncJobRunner', 'SlackTransport', 'ImageClient', 'ImageGenerationError', 'ImageDelivery',
    'FeedbackLedger', 'CannedReplies', 'CannedReply',
]
