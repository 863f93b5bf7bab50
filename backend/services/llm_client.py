"""LLM Client for Groq chat completions."""
import time
from dataclasses import dataclass
from typing import List, Optional, Dict, Any
from groq import AsyncGroq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, BadRequestError
from langsmith import traceable
from langsmith.run_helpers import get_current_run_tree
import logging

from config import GROQ_API_KEY, CHAT_MODEL, CHAT_TEMPERATURE, CHAT_MAX_TOKENS
from models.conversation import ChatMessage

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Response from a chat completion."""
    text: str
    correlation_id: Optional[str]
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)

    @property
    def is_content_policy(self) -> bool:
        return self.error.code == "CONTENT_POLICY_ERROR"


def _trace_inputs(inputs: Dict[str, Any]) -> Dict[str, Any]:
    """Show only the user's text and history length in the trace."""
    history = inputs.get("history") or []
    return {"input": inputs.get("user_text"), "history_length": len(history)}


class LLMClient:
    """Client for interfacing with Groq API for chat completions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = CHAT_TEMPERATURE,
        max_tokens: int = CHAT_MAX_TOKENS
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model name (defaults to CHAT_MODEL)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate per reply
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model or CHAT_MODEL
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = AsyncGroq(api_key=self.api_key)
        logger.info("LLMClient initialized successfully")

    @staticmethod
    def build_messages(
        system_prompt: str,
        history: List[ChatMessage],
        user_text: str
    ) -> List[Dict[str, str]]:
        """
        Build the chat message list: system prompt, prior window, new user text.

        Args:
            system_prompt: Personality prompt
            history: Conversation window in chronological order
            user_text: The new message

        Returns:
            Messages in chat-completion format
        """
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(message.as_prompt_message() for message in history)
        messages.append({"role": "user", "content": user_text})
        return messages

    @traceable(run_type="llm", name="chat_completion", process_inputs=_trace_inputs)
    async def complete(
        self,
        system_prompt: str,
        history: List[ChatMessage],
        user_text: str
    ) -> CompletionResult:
        """
        Generate a reply using the Groq API.

        The call runs inside a LangSmith trace; the trace's run id is
        returned as the correlation id so feedback can be attached later.

        Returns:
            CompletionResult with text, correlation id, token counts and latency

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        start_time = time.time()
        model = self.model

        try:
            logger.debug(f"Generating response with model: {model}, history={len(history)}")

            response = await self.client.chat.completions.create(
                model=model,
                messages=self.build_messages(system_prompt, history, user_text),
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )

            latency_ms = int((time.time() - start_time) * 1000)
            text = response.choices[0].message.content or ""
            tokens_input = response.usage.prompt_tokens
            tokens_output = response.usage.completion_tokens

            logger.info(
                f"Generated response: model={model}, "
                f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
                f"latency={latency_ms}ms"
            )

            return CompletionResult(
                text=text,
                correlation_id=self._current_run_id(),
                tokens_input=tokens_input,
                tokens_output=tokens_output,
                latency_ms=latency_ms,
                model_used=model
            )

        except BadRequestError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            # Groq reports rejected prompts as a 400 mentioning the content
            code = "CONTENT_POLICY_ERROR" if "content" in str(e).lower() else "BAD_REQUEST_ERROR"
            raise self._error(code, "The request was rejected by the model provider.", model, latency_ms, e)

        except RateLimitError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            raise self._error(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                model,
                latency_ms,
                e,
                retry_after=60
            )

        except AuthenticationError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            raise self._error(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                model,
                latency_ms,
                e
            )

        except APITimeoutError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            raise self._error("TIMEOUT_ERROR", "Request timed out. Please try again.", model, latency_ms, e)

        except APIError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            raise self._error("API_ERROR", f"Groq API error: {str(e)}", model, latency_ms, e)

        except Exception as e:
            latency_ms = int((time.time() - start_time) * 1000)
            raise self._error(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                model,
                latency_ms,
                e,
                error_type=type(e).__name__
            )

    @staticmethod
    def _current_run_id() -> Optional[str]:
        try:
            run_tree = get_current_run_tree()
        except Exception as e:
            logger.debug(f"Could not capture run id: {e}")
            return None
        return str(run_tree.id) if run_tree is not None else None

    @staticmethod
    def _error(
        code: str,
        message: str,
        model: str,
        latency_ms: int,
        original: Exception,
        **details: Any
    ) -> LLMClientError:
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": model,
                "latency_ms": latency_ms,
                "original_error": str(original),
                **details
            }
        )
        logger.error(
            f"{code}: model={model}, latency={latency_ms}ms, error={original}",
            exc_info=True,
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)
