"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass
class ChatMessage:
    """One raw entry of a user's conversation window."""
    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        timestamp = data.get("timestamp")
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc),
        )

    def as_prompt_message(self) -> Dict[str, str]:
        """Shape used by chat-completion APIs."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ConversationTurn:
    """Represents a single exchange between a user and the bot."""
    user_id: str
    channel_kind: str
    input_text: str
    output_text: str
    timestamp_created: datetime


@dataclass
class TurnResult:
    """What the turn processor hands back to the transport layer."""
    reply_text: str
    turn_id: Optional[str] = None
    blocked: bool = False
