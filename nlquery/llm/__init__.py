"""
LLM Provider Module

Multi-provider chat-completion layer (OpenAI, Anthropic, local servers).

Usage:
    from nlquery.llm import LLMProviderFactory, LLMMessage
    from nlquery.config import get_settings

    provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    text = await provider.complete([LLMMessage(role="user", content="Hello!")])
"""

from nlquery.llm.anthropic import AnthropicProvider
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.factory import LLMProviderFactory
from nlquery.llm.local import LocalProvider
from nlquery.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from nlquery.llm.openai import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "LLMProviderFactory",
    "OpenAIProvider",
    "AnthropicProvider",
    "LocalProvider",
]
