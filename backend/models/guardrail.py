"""Guardrail verdict models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class GuardrailCategory(str, Enum):
    """Why a message was blocked."""
    SENSITIVE_DATA = "sensitive_data"
    CONTENT_POLICY = "content_policy"
    PROMPT_INJECTION = "prompt_injection"


@dataclass
class GuardrailVerdict:
    """
    Result of screening one message.

    Attributes:
        category: None when the message is clear, otherwise the blocking stage
        warning_payload: In-character reply shown to the user when blocked
        labels: Detected category labels (info types, moderation categories, rule names)
        scores: Per-category scores reported by the moderation classifier
    """
    category: Optional[GuardrailCategory] = None
    warning_payload: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def blocked(self) -> bool:
        return self.category is not None

    @property
    def tag(self) -> str:
        return self.category.value if self.category else "clear"

    @classmethod
    def clear(cls) -> "GuardrailVerdict":
        return cls()
