"""Conversation turn orchestration: guardrails, memory, completion."""
import asyncio
import logging
import re
import weakref

from config import BOT_PERSONALITY
from models.conversation import TurnResult
from services.conversation_memory import ConversationMemory
from services.guardrail_engine import GuardrailEngine
from services.llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)

EMPTY_MESSAGE_REPLY = "I apologize, but I cannot process an empty message. How may I assist you?"
IMAGE_REDIRECT_REPLY = (
    "I'd be happy to assist with image generation. Please use the /dalle slash command "
    "followed by your prompt. For example: `/dalle a sunset over mountains`"
)
CONTENT_ERROR_REPLY = (
    "I apologize, but I encountered an issue processing your message. "
    "Could you please rephrase your request?"
)
GENERIC_ERROR_REPLY = "My neural pathways are experiencing a malfunction. Please try again."


class UserLocks:
    """
    One ``asyncio.Lock`` per user id.

    Locks are weakly held, so a user's entry disappears once no turn is
    using it.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_user(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class TurnProcessor:
    """
    Runs one user message through the full pipeline.

    Steps, strictly ordered:
    1. Reject empty text
    2. Redirect natural-language image requests to /dalle
    3. Guardrail screen (blocked → warning, nothing else happens)
    4. Load the user's conversation window
    5. Chat completion with personality + window + new text
    6. Save the exchange and refresh the TTL
    7. Return the completion's correlation id as the turn id
    """

    IMAGE_REQUEST_PATTERN = re.compile(
        r"(?:can you |could you |please |)(?:create|generate|make|draw).+(?:image|picture|drawing|illustration)",
        re.IGNORECASE
    )

    def __init__(
        self,
        guardrails: GuardrailEngine,
        memory: ConversationMemory,
        llm_client: LLMClient,
        system_prompt: str = BOT_PERSONALITY,
        locks: UserLocks = None
    ):
        self.guardrails = guardrails
        self.memory = memory
        self.llm_client = llm_client
        self.system_prompt = system_prompt
        self.locks = locks or UserLocks()

    async def process(self, user_text: str, user_id: str, channel_kind: str = "unknown") -> TurnResult:
        """
        Process one user message and build the reply.

        Args:
            user_text: Message text with any bot mention already stripped
            user_id: Slack user id (memory is keyed on it)
            channel_kind: Slack channel type, used for tags and memory records

        Returns:
            TurnResult with the reply text and the turn id (None when the
            reply did not come from a traced completion)
        """
        # Step 1: Validate input
        if not user_text or not user_text.strip():
            logger.info("Received empty message")
            return TurnResult(reply_text=EMPTY_MESSAGE_REPLY)

        # Step 2: Meta requests answered locally
        if self.IMAGE_REQUEST_PATTERN.search(user_text):
            logger.info(f"Redirecting image request from user {user_id} to /dalle")
            return TurnResult(reply_text=IMAGE_REDIRECT_REPLY)

        # Step 3: Guardrails
        verdict = await self.guardrails.screen(user_text, user_id, channel_kind)
        if verdict.blocked:
            logger.info(f"Turn blocked for user {user_id}: {verdict.tag}")
            return TurnResult(reply_text=verdict.warning_payload, blocked=True)

        try:
            async with self.locks.for_user(user_id):
                # Step 4: Conversation window
                history = await self.memory.load_window(user_id)

                # Step 5: Completion
                completion = await self.llm_client.complete(self.system_prompt, history, user_text)

                # Step 6: Persist the exchange
                await self.memory.append(user_id, user_text, completion.text, channel_kind)
                await self.memory.touch_expiry(user_id)

        except LLMClientError as e:
            logger.error(f"Completion failed for user {user_id}: {e.error.code}")
            if e.is_content_policy:
                return TurnResult(reply_text=CONTENT_ERROR_REPLY)
            return TurnResult(reply_text=GENERIC_ERROR_REPLY)
        except Exception as e:
            logger.error(f"Unexpected error processing turn for user {user_id}: {e}", exc_info=True)
            return TurnResult(reply_text=GENERIC_ERROR_REPLY)

        # Step 7: Turn id for feedback
        logger.info(
            f"Turn processed for user {user_id}: history={len(history)}, "
            f"turn_id={completion.correlation_id}"
        )
        return TurnResult(reply_text=completion.text, turn_id=completion.correlation_id)
