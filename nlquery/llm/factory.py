"""
LLM Provider Factory

Creates provider instances from LLMSettings, with per-agent provider
overrides (`sql_provider`, `router_provider`, `reasoning_provider`).
"""

import logging
from typing import Literal

from nlquery.config import LLMSettings
from nlquery.llm.anthropic import AnthropicProvider
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.local import LocalProvider
from nlquery.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)

ModelType = Literal["main", "mini"]


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    PROVIDERS = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "local": LocalProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: str,
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider_type: One of "openai", "anthropic", "local"
            config: LLM configuration settings
            model_type: Use main model or mini model (default: main)

        Raises:
            ValueError: If provider type is unknown or its API key is missing
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS.keys())}"
            )

        logger.info(
            f"Creating {provider_type} provider with {model_type} model",
            extra={"provider": provider_type, "model_type": model_type},
        )

        if provider_type == "openai":
            if not config.openai_api_key:
                raise ValueError("OpenAI API key is required but not configured")
            return OpenAIProvider(
                api_key=config.openai_api_key,
                model=config.openai_model if model_type == "main" else config.openai_model_mini,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )

        if provider_type == "anthropic":
            if not config.anthropic_api_key:
                raise ValueError("Anthropic API key is required but not configured")
            return AnthropicProvider(
                api_key=config.anthropic_api_key,
                model=(
                    config.anthropic_model if model_type == "main" else config.anthropic_model_mini
                ),
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )

        # Local servers expose a single model
        return LocalProvider(
            base_url=config.local_base_url,
            model=config.local_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @staticmethod
    def create_default_provider(
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """Create provider using default_provider from config."""
        return LLMProviderFactory.create_provider(config.default_provider, config, model_type)

    @staticmethod
    def create_agent_provider(
        agent_name: str,
        config: LLMSettings,
        model_type: ModelType = "main",
    ) -> BaseLLMProvider:
        """
        Create provider for a specific agent with override support.

        Looks up `<agent_name>_provider` on the config (e.g. `sql_provider`)
        and falls back to `default_provider`.
        """
        override = getattr(config, f"{agent_name}_provider", None)
        provider_type = override or config.default_provider

        logger.info(
            f"Creating provider for {agent_name} agent",
            extra={
                "agent": agent_name,
                "provider": provider_type,
                "has_override": override is not None,
            },
        )

        return LLMProviderFactory.create_provider(provider_type, config, model_type)
