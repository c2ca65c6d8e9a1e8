"""
Tests for the OpenAI, Anthropic and local providers.

API clients are mocked; no network calls are made.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from nlquery.llm.anthropic import AnthropicProvider
from nlquery.llm.local import LocalProvider
from nlquery.llm.models import LLMMessage, LLMRequest
from nlquery.llm.openai import OpenAIProvider


def _request(**kwargs) -> LLMRequest:
    return LLMRequest(
        messages=[
            LLMMessage(role="system", content="You are a SQL expert."),
            LLMMessage(role="user", content="Total revenue?"),
        ],
        **kwargs,
    )


class TestOpenAIProvider:
    """Test OpenAI provider."""

    @pytest.fixture
    def provider(self):
        return OpenAIProvider(api_key="sk-test-key-1234567890abcdefghij", model="gpt-4o")

    @pytest.fixture
    def openai_response(self):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "SELECT SUM(amount) FROM orders"
        response.choices[0].finish_reason = "stop"
        response.model = "gpt-4o"
        response.usage.prompt_tokens = 10
        response.usage.completion_tokens = 5
        response.usage.total_tokens = 15
        response.id = "chatcmpl-123"
        return response

    def test_initialization(self, provider):
        assert provider.provider_name == "openai"
        assert provider.model == "gpt-4o"
        assert provider.client is not None

    @pytest.mark.asyncio
    async def test_generate(self, provider, openai_response):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=openai_response,
        ) as mock_create:
            response = await provider.generate(_request())

        assert response.content == "SELECT SUM(amount) FROM orders"
        assert response.usage.total_tokens == 15
        assert response.provider == "openai"
        assert response.metadata == {"id": "chatcmpl-123"}

        kwargs = mock_create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 2000
        assert kwargs["messages"][0] == {"role": "system", "content": "You are a SQL expert."}

    @pytest.mark.asyncio
    async def test_request_overrides_defaults(self, provider, openai_response):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=openai_response,
        ) as mock_create:
            await provider.generate(_request(model="gpt-4o-mini", temperature=0.7, max_tokens=100))

        kwargs = mock_create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_unknown_finish_reason_maps_to_stop(self, provider, openai_response):
        openai_response.choices[0].finish_reason = "tool_calls"
        openai_response.choices[0].message.content = None

        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=openai_response,
        ):
            response = await provider.generate(_request())

        assert response.finish_reason == "stop"
        assert response.content == ""

    @pytest.mark.asyncio
    async def test_complete_returns_text(self, provider, openai_response):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=openai_response,
        ):
            text = await provider.complete([LLMMessage(role="user", content="Total revenue?")])

        assert text == "SELECT SUM(amount) FROM orders"

    def test_count_tokens_is_positive(self, provider):
        assert provider.count_tokens("SELECT 1 FROM orders") > 0


class TestAnthropicProvider:
    """Test Anthropic provider."""

    @pytest.fixture
    def provider(self):
        return AnthropicProvider(api_key="sk-ant-REDACTED")

    @pytest.fixture
    def anthropic_response(self):
        block = MagicMock()
        block.type = "text"
        block.text = "SELECT 1"
        response = MagicMock()
        response.content = [block]
        response.model = "claude-3-5-sonnet-20241022"
        response.usage.input_tokens = 12
        response.usage.output_tokens = 3
        response.stop_reason = "max_tokens"
        response.id = "msg_123"
        return response

    @pytest.mark.asyncio
    async def test_system_messages_are_separated(self, provider, anthropic_response):
        with patch.object(
            provider.client.messages,
            "create",
            new_callable=AsyncMock,
            return_value=anthropic_response,
        ) as mock_create:
            response = await provider.generate(_request())

        kwargs = mock_create.call_args.kwargs
        assert kwargs["system"] == "You are a SQL expert."
        assert kwargs["messages"] == [{"role": "user", "content": "Total revenue?"}]
        assert response.content == "SELECT 1"
        assert response.usage.total_tokens == 15
        assert response.finish_reason == "length"
        assert response.provider == "anthropic"


class TestLocalProvider:
    """Test local model server provider."""

    @pytest.fixture
    def provider(self):
        return LocalProvider(base_url="http://localhost:11434/", model="llama3.1:8b")

    def test_base_url_is_normalized(self, provider):
        assert provider.base_url == "http://localhost:11434"

    @pytest.mark.asyncio
    async def test_ollama_response(self, provider):
        provider._post = AsyncMock(
            return_value={
                "model": "llama3.1:8b",
                "message": {"role": "assistant", "content": "SELECT 1"},
                "prompt_eval_count": 20,
                "eval_count": 4,
            }
        )

        response = await provider.generate(_request())

        assert response.content == "SELECT 1"
        assert response.usage.total_tokens == 24
        assert provider._post.call_args.args[0] == "/api/chat"
        assert provider._post.call_args.args[1]["stream"] is False

    @pytest.mark.asyncio
    async def test_falls_back_to_openai_compatible_route(self, provider):
        provider._post = AsyncMock(
            side_effect=[
                httpx.ConnectError("connection refused"),
                {
                    "model": "llama3.1:8b",
                    "choices": [{"message": {"content": "SELECT 2"}}],
                    "usage": {"prompt_tokens": 8, "completion_tokens": 2},
                },
            ]
        )

        response = await provider.generate(_request())

        assert response.content == "SELECT 2"
        assert response.usage.total_tokens == 10
        assert provider._post.call_args.args[0] == "/v1/chat/completions"
