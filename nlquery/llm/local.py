"""
Local LLM Provider

Talks to Ollama, vLLM, llama.cpp server or any OpenAI-compatible endpoint
over httpx.
"""

import logging

import httpx

from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """Local model server provider."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        super().__init__(
            provider_name="local",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=float(timeout))

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate completion using the local server.

        Tries the Ollama chat endpoint first and falls back to the
        OpenAI-compatible `/v1/chat/completions` route.
        """
        request = self._apply_defaults(request)
        self._log_request(request)

        payload = {
            "model": request.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": False,
        }

        try:
            data = await self._post("/api/chat", payload)
        except httpx.HTTPError as e:
            logger.debug(f"Ollama endpoint unavailable, trying OpenAI-compatible route: {e}")
            data = await self._post("/v1/chat/completions", payload)

        content = data.get("message", {}).get("content") or (
            data.get("choices") or [{}]
        )[0].get("message", {}).get("content", "")
        prompt_tokens = data.get("prompt_eval_count") or data.get("usage", {}).get("prompt_tokens", 0)
        completion_tokens = data.get("eval_count") or data.get("usage", {}).get(
            "completion_tokens", 0
        )

        llm_response = LLMResponse(
            content=content or "",
            model=data.get("model", request.model),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            provider="local",
            metadata={"base_url": self.base_url},
        )

        self._log_response(llm_response)
        return llm_response

    def count_tokens(self, text: str) -> int:
        """Count tokens (rough approximation for local models)."""
        return len(text) // 4

    async def _post(self, path: str, payload: dict) -> dict:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()
