"""Unit tests for LLMClient."""
import sys
sys.path.insert(0, 'backend')

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock, patch
from services.llm_client import LLMClient, CompletionResult, LLMClientError
from models.conversation import ChatMessage
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, BadRequestError


SYSTEM_PROMPT = "You are Data, an android officer."


def mock_groq_response(content="Warp drive bends space.", prompt_tokens=150, completion_tokens=12):
    response = Mock()
    response.choices = [Mock(message=Mock(content=content))]
    response.usage = Mock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    return response


def groq_client_with(create):
    client = Mock()
    client.chat.completions.create = create
    return client


class TestLLMClient:
    """Test suite for LLMClient class."""

    def test_initialization_with_api_key(self):
        """Test LLMClient initializes with provided API key."""
        client = LLMClient(api_key="test_key")
        assert client.api_key == "test_key"

    def test_initialization_without_api_key_raises_error(self):
        """Test LLMClient raises error when no API key provided."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            with pytest.raises(ValueError, match="GROQ_API_KEY must be provided"):
                LLMClient()

    def test_build_messages_with_history(self):
        """Test message building puts system prompt, history and new text in order."""
        history = [
            ChatMessage(role="user", content="My name is Geordi."),
            ChatMessage(role="assistant", content="Noted, Geordi."),
        ]

        messages = LLMClient.build_messages(SYSTEM_PROMPT, history, "What is my name?")

        assert messages == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "My name is Geordi."},
            {"role": "assistant", "content": "Noted, Geordi."},
            {"role": "user", "content": "What is my name?"},
        ]

    def test_build_messages_without_history(self):
        """Test message building with an empty window."""
        messages = LLMClient.build_messages(SYSTEM_PROMPT, [], "Hello")

        assert len(messages) == 2
        assert messages[0]["role"] == "system"
        assert messages[-1] == {"role": "user", "content": "Hello"}

    @patch('services.llm_client.get_current_run_tree')
    @patch('services.llm_client.AsyncGroq')
    def test_complete_success(self, mock_groq_class, mock_run_tree):
        """Test successful completion returns text, usage and the trace run id."""
        create = AsyncMock(return_value=mock_groq_response())
        mock_groq_class.return_value = groq_client_with(create)
        mock_run_tree.return_value = Mock(id="run-abc")

        client = LLMClient(api_key="test_key", model="llama-3.3-70b-versatile")
        result = asyncio.run(client.complete(SYSTEM_PROMPT, [], "What is warp drive?"))

        assert isinstance(result, CompletionResult)
        assert result.text == "Warp drive bends space."
        assert result.correlation_id == "run-abc"
        assert result.tokens_input == 150
        assert result.tokens_output == 12
        assert result.model_used == "llama-3.3-70b-versatile"
        assert result.latency_ms >= 0

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["messages"][-1] == {"role": "user", "content": "What is warp drive?"}

    @patch('services.llm_client.get_current_run_tree')
    @patch('services.llm_client.AsyncGroq')
    def test_complete_without_trace(self, mock_groq_class, mock_run_tree):
        """Test correlation id is None when no trace is active."""
        mock_groq_class.return_value = groq_client_with(AsyncMock(return_value=mock_groq_response()))
        mock_run_tree.return_value = None

        client = LLMClient(api_key="test_key")
        result = asyncio.run(client.complete(SYSTEM_PROMPT, [], "Hello"))

        assert result.correlation_id is None

    @patch('services.llm_client.get_current_run_tree')
    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_empty_content(self, mock_groq_class, mock_run_tree):
        """Test a None message body becomes an empty string."""
        mock_groq_class.return_value = groq_client_with(AsyncMock(return_value=mock_groq_response(content=None)))
        mock_run_tree.return_value = None

        client = LLMClient(api_key="test_key")
        result = asyncio.run(client.complete(SYSTEM_PROMPT, [], "Hello"))

        assert result.text == ""

    def _complete_error(self, mock_groq_class, side_effect):
        mock_groq_class.return_value = groq_client_with(AsyncMock(side_effect=side_effect))
        client = LLMClient(api_key="test_key", model="llama-3.3-70b-versatile")
        with pytest.raises(LLMClientError) as exc_info:
            asyncio.run(client.complete(SYSTEM_PROMPT, [], "Test prompt"))
        return exc_info.value

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_unknown_error(self, mock_groq_class):
        """Test that unexpected errors are properly raised with structured error."""
        error = self._complete_error(mock_groq_class, Exception("API Error")).error

        assert error.code == "UNKNOWN_ERROR"
        assert "Unexpected error" in error.message
        assert error.details["model"] == "llama-3.3-70b-versatile"
        assert error.details["error_type"] == "Exception"

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_rate_limit_error(self, mock_groq_class):
        """Test that rate limit errors are handled with retry suggestion."""
        exc = self._complete_error(mock_groq_class, RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        ))

        assert exc.error.code == "RATE_LIMIT_ERROR"
        assert "Rate limit exceeded" in exc.error.message
        assert exc.error.details["retry_after"] == 60
        assert not exc.is_content_policy

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_authentication_error(self, mock_groq_class):
        """Test that authentication errors are handled properly."""
        error = self._complete_error(mock_groq_class, AuthenticationError(
            message="Invalid API key",
            response=Mock(status_code=401),
            body=None
        )).error

        assert error.code == "AUTHENTICATION_ERROR"
        assert "Authentication failed" in error.message

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_timeout_error(self, mock_groq_class):
        """Test that timeout errors are handled properly."""
        error = self._complete_error(mock_groq_class, APITimeoutError(request=Mock())).error

        assert error.code == "TIMEOUT_ERROR"
        assert "timed out" in error.message

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_generic_api_error(self, mock_groq_class):
        """Test that generic API errors are handled properly."""
        error = self._complete_error(mock_groq_class, APIError(
            message="Service unavailable",
            request=Mock(),
            body=None
        )).error

        assert error.code == "API_ERROR"
        assert "Groq API error" in error.message

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_content_rejection(self, mock_groq_class):
        """Test that a provider content rejection is flagged as a content policy error."""
        exc = self._complete_error(mock_groq_class, BadRequestError(
            message="Request blocked: content violates usage policy",
            response=Mock(status_code=400),
            body=None
        ))

        assert exc.error.code == "CONTENT_POLICY_ERROR"
        assert exc.is_content_policy

    @patch('services.llm_client.AsyncGroq')
    def test_complete_handles_other_bad_request(self, mock_groq_class):
        """Test that other 400s are not mistaken for content rejections."""
        exc = self._complete_error(mock_groq_class, BadRequestError(
            message="max_tokens must be positive",
            response=Mock(status_code=400),
            body=None
        ))

        assert exc.error.code == "BAD_REQUEST_ERROR"
        assert not exc.is_content_policy

    @patch('services.llm_client.AsyncGroq')
    def test_error_includes_latency(self, mock_groq_class):
        """Test that errors include latency measurement."""
        error = self._complete_error(mock_groq_class, Exception("boom")).error

        assert isinstance(error.details["latency_ms"], int)
        assert error.details["latency_ms"] >= 0
        assert error.details["original_error"] == "boom"
