"""
ReasoningAgent

Explains an executed statement and its result in prose. Optional stage:
any failure returns a fixed fallback sentence instead of propagating.
"""

import json
import logging

from nlquery.agents.base import BaseAgent
from nlquery.config import Settings, get_settings
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.factory import LLMProviderFactory
from nlquery.llm.models import LLMMessage, LLMRequest
from nlquery.models.agent import ReasoningAgentInput, ReasoningAgentOutput
from nlquery.models.query import TabularResult
from nlquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

FALLBACK_REASONING = "Reasoning generation failed. Please review the SQL query and results."
NO_ROWS = "No rows returned"


def preview_rows(result: TabularResult, limit: int = 5) -> str:
    """First rows of a result as JSON objects keyed by column."""
    if not result.rows or limit == 0:
        return NO_ROWS
    keys = _unique_keys(result.columns)
    rows = [dict(zip(keys, row)) for row in result.rows[:limit]]
    return json.dumps(rows, indent=2, default=str)


def _unique_keys(columns: list[str]) -> list[str]:
    # id, id -> id, id_2
    seen: dict[str, int] = {}
    keys = []
    for column in columns:
        seen[column] = seen.get(column, 0) + 1
        keys.append(column if seen[column] == 1 else f"{column}_{seen[column]}")
    return keys


class ReasoningAgent(BaseAgent):
    """Result explanation agent."""

    def __init__(
        self,
        llm_provider: BaseLLMProvider | None = None,
        settings: Settings | None = None,
        prompts: PromptLoader | None = None,
    ):
        super().__init__(name="ReasoningAgent")
        self.settings = settings or get_settings()

        if llm_provider is None:
            self.llm = LLMProviderFactory.create_agent_provider(
                agent_name="reasoning",
                config=self.settings.llm,
                model_type="mini",
            )
        else:
            self.llm = llm_provider
        self.prompts = prompts or PromptLoader()

    async def execute(self, input: ReasoningAgentInput) -> ReasoningAgentOutput:
        reasoning, fallback_used = await self._explain(input.query, input.sql, input.result)
        return ReasoningAgentOutput(
            success=not fallback_used,
            reasoning=reasoning,
            fallback_used=fallback_used,
            metadata=self._create_metadata(),
        )

    async def explain(self, question: str, sql: str, result: TabularResult) -> str:
        reasoning, _ = await self._explain(question, sql, result)
        return reasoning

    async def _explain(self, question: str, sql: str, result: TabularResult) -> tuple[str, bool]:
        pipeline = self.settings.pipeline
        try:
            prompt = self.prompts.render(
                "agents/query_reasoning.md",
                user_query=question,
                sql=sql,
                result_preview=preview_rows(result, pipeline.reasoning_preview_rows),
            )
            response = await self.llm.generate(
                LLMRequest(
                    messages=[
                        LLMMessage(
                            role="system", content=self.prompts.render("system/data_explainer.md")
                        ),
                        LLMMessage(role="user", content=prompt),
                    ],
                    model=pipeline.reasoning_model,
                    temperature=pipeline.reasoning_temperature,
                )
            )
            self._track_llm_call(tokens=response.usage.total_tokens)
            reasoning = response.content.strip()
            if not reasoning:
                raise ValueError("Empty reasoning response")
            return reasoning, False
        except Exception as e:
            logger.warning(
                f"[{self.name}] Reasoning generation failed: {e}",
                extra={"error_type": type(e).__name__},
                exc_info=True,
            )
            return FALLBACK_REASONING, True
