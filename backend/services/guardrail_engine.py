"""
Guardrail engine for inbound Slack messages.

Every message is screened by three stages in a fixed order, and the first
stage that triggers short-circuits the rest:

1. Sensitive data (Google Cloud DLP)
2. Content moderation (OpenAI moderation endpoint)
3. Prompt injection (local pattern rules)

Both external classifiers fail closed: if the service cannot answer, the
message is blocked with a synthetic "unavailable" category.
"""
import logging
import re
from typing import Dict, List, Optional

from models.guardrail import GuardrailCategory, GuardrailVerdict
from services.moderation_client import ModerationClient
from services.sensitive_data import SensitiveDataClient
from services.telemetry import TelemetrySink

logger = logging.getLogger(__name__)

DETECTION_UNAVAILABLE = "Detection Service Unavailable"
MODERATION_UNAVAILABLE = "Moderation Service Unavailable"
REDACTED_FALLBACK = "[REDACTED]"
UNVERIFIED_TEXT = "[WITHHELD - detection unavailable]"

SENSITIVE_DATA_WARNING = (
    ":warning: I must advise against sharing sensitive information in this channel. "
    "My sensors detected: *{labels}*. For your security, I have not processed this message. "
    "Please remove the sensitive data and try again."
)
CONTENT_POLICY_WARNING = (
    ":no_entry: I am unable to respond to that request. It appears to conflict with "
    "content guidelines ({labels}). Perhaps we could discuss another topic?"
)
DETECTION_OUTAGE_WARNING = (
    ":warning: My sensitive data scanners are temporarily offline. Until they are restored "
    "I cannot safely process your message. Please try again shortly."
)
MODERATION_OUTAGE_WARNING = (
    ":warning: My content review subroutines are temporarily offline. Until they are restored "
    "I cannot safely process your message. Please try again shortly."
)
PROMPT_INJECTION_WARNING = (
    ":shield: I have detected an attempt to alter my operational parameters. "
    "My programming does not permit me to disregard my core instructions. "
    "How else may I assist you?"
)

# DLP info types shown to users
INFO_TYPE_NAMES = {
    "US_SOCIAL_SECURITY_NUMBER": "US Social Security Number",
    "CREDIT_CARD_NUMBER": "Credit Card Number",
    "EMAIL_ADDRESS": "Email Address",
    "PHONE_NUMBER": "Phone Number",
    "US_BANK_ROUTING_MICR": "US Bank Routing Number",
    "IBAN_CODE": "IBAN",
    "US_PASSPORT": "US Passport Number",
    "US_DRIVERS_LICENSE_NUMBER": "US Driver's License Number",
}


def readable_label(label: str) -> str:
    """Display name for a DLP info type or moderation category."""
    if label in INFO_TYPE_NAMES:
        return INFO_TYPE_NAMES[label]
    # Unknown DLP info types keep their upper-case acronyms
    if label.isupper():
        return label.replace("_", " ")
    return label.replace("_", " ").title()


class GuardrailEngine:
    """Runs the three-stage compliance screen over raw user text."""

    # Instruction-override attempts, checked case-insensitively
    INJECTION_PATTERNS = {
        "ignore_instructions": r"\b(ignore|disregard|forget|override)\b.{0,40}\b(previous|prior|above|earlier|preceding|your|system|initial)\b.{0,20}\b(instructions?|prompts?|rules|directives)\b",
        "pretend_persona": r"\bpretend\s+(you\s+are|to\s+be|you're)\b",
        "role_reassignment": r"\byou\s+are\s+now\s+(a|an|in|the)\b",
        "act_as": r"\bact\s+as\s+(if\s+you|a|an)\b",
        "system_tag": r"\[\s*(system|sys|admin)\s*\]|<\s*/?\s*system\s*>",
        "prompt_exfiltration": r"\b(reveal|show|print|repeat|output)\b.{0,30}\b(system\s+prompt|hidden\s+instructions|initial\s+instructions)\b",
        "jailbreak_mode": r"\b(developer\s+mode|dan\s+mode|jailbreak|do\s+anything\s+now)\b",
        "new_instructions": r"\bnew\s+instructions\s*:",
    }

    def __init__(
        self,
        sensitive_data: SensitiveDataClient,
        moderation: ModerationClient,
        telemetry: TelemetrySink
    ):
        self.sensitive_data = sensitive_data
        self.moderation = moderation
        self.telemetry = telemetry
        self._injection_rules = {
            name: re.compile(pattern, re.IGNORECASE | re.DOTALL)
            for name, pattern in self.INJECTION_PATTERNS.items()
        }

    async def screen(self, text: str, user_id: str, channel_kind: str) -> GuardrailVerdict:
        """
        Screen one message.

        Args:
            text: Raw user text
            user_id: Slack user id, used for audit metadata only
            channel_kind: Slack channel type (im, mpim, channel, ...)

        Returns:
            GuardrailVerdict; ``verdict.blocked`` is False when all stages are clear
        """
        # Stage 1: sensitive data
        verdict, audit_text = await self._check_sensitive_data(text)
        if verdict.blocked:
            self._record(verdict, audit_text, user_id, channel_kind)
            return verdict

        # Stage 2: content moderation (text passed DLP, safe to audit)
        verdict = await self._check_moderation(text)
        if verdict.blocked:
            self._record(verdict, text, user_id, channel_kind)
            return verdict

        # Stage 3: prompt injection
        verdict = self._check_injection(text)
        self._record(verdict, text, user_id, channel_kind)
        return verdict

    async def _check_sensitive_data(self, text: str):
        """Return the stage verdict plus the text that is safe to send to telemetry."""
        try:
            labels = await self.sensitive_data.inspect(text)
        except Exception as e:
            logger.error(f"Sensitive data inspection unavailable, blocking message: {e}")
            labels = [DETECTION_UNAVAILABLE]
            return self._blocked(GuardrailCategory.SENSITIVE_DATA, labels), UNVERIFIED_TEXT

        if not labels:
            return GuardrailVerdict.clear(), text

        logger.info(f"Sensitive data detected: {', '.join(labels)} (length={len(text)})")
        try:
            redacted = await self.sensitive_data.redact(text)
        except Exception as e:
            logger.error(f"Sensitive data redaction failed, using fallback text: {e}")
            redacted = REDACTED_FALLBACK

        return self._blocked(GuardrailCategory.SENSITIVE_DATA, labels), redacted

    async def _check_moderation(self, text: str) -> GuardrailVerdict:
        try:
            result = await self.moderation.moderate(text)
        except Exception as e:
            logger.error(f"Moderation service unavailable, blocking message: {e}")
            return self._blocked(GuardrailCategory.CONTENT_POLICY, [MODERATION_UNAVAILABLE])

        if not result.flagged:
            return GuardrailVerdict.clear()

        logger.info(f"Content flagged by moderation: {', '.join(result.categories)}")
        return self._blocked(GuardrailCategory.CONTENT_POLICY, result.categories, result.scores)

    def _check_injection(self, text: str) -> GuardrailVerdict:
        try:
            matched = self.match_injection_rules(text)
        except Exception as e:
            # Local rules never block on their own failure
            logger.warning(f"Prompt injection check failed, treating as clear: {e}")
            return GuardrailVerdict.clear()

        if not matched:
            return GuardrailVerdict.clear()

        logger.info(f"Prompt injection rules matched: {', '.join(matched)}")
        return self._blocked(GuardrailCategory.PROMPT_INJECTION, matched)

    def match_injection_rules(self, text: str) -> List[str]:
        """Return the names of the injection rules ``text`` matches."""
        return [name for name, rule in self._injection_rules.items() if rule.search(text)]

    @staticmethod
    def _blocked(
        category: GuardrailCategory,
        labels: List[str],
        scores: Optional[Dict[str, float]] = None
    ) -> GuardrailVerdict:
        return GuardrailVerdict(
            category=category,
            warning_payload=GuardrailEngine.warning_for(category, labels),
            labels=list(labels),
            scores=dict(scores or {}),
        )

    @staticmethod
    def warning_for(category: GuardrailCategory, labels: List[str]) -> str:
        """In-character reply for a blocked message."""
        readable = ", ".join(readable_label(label) for label in labels) or "unspecified"
        if category == GuardrailCategory.SENSITIVE_DATA:
            if DETECTION_UNAVAILABLE in labels:
                return DETECTION_OUTAGE_WARNING
            return SENSITIVE_DATA_WARNING.format(labels=readable)
        if category == GuardrailCategory.CONTENT_POLICY:
            if MODERATION_UNAVAILABLE in labels:
                return MODERATION_OUTAGE_WARNING
            return CONTENT_POLICY_WARNING.format(labels=readable)
        return PROMPT_INJECTION_WARNING

    def _record(self, verdict: GuardrailVerdict, audit_text: str, user_id: str, channel_kind: str) -> None:
        self.telemetry.record_event(
            "guardrail_verdict",
            tags=["guardrail", verdict.tag],
            metadata={
                "text": audit_text,
                "outcome": "blocked" if verdict.blocked else "clear",
                "category": verdict.tag,
                "labels": verdict.labels,
                "scores": verdict.scores,
                "user_id": user_id,
                "channel_type": channel_kind,
            },
        )
