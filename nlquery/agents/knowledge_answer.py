"""
KnowledgeAnswerAgent

Answers rag-path questions from the data source's knowledge collection:
a semantic search over table and column records followed by an LLM answer
grounded in the hits. No SQL is generated or executed.
"""

import logging
from typing import Any

from nlquery.agents.base import BaseAgent
from nlquery.config import Settings, get_settings
from nlquery.knowledge.vectors import KnowledgeStore, KnowledgeStoreError
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.factory import LLMProviderFactory
from nlquery.llm.models import LLMMessage, LLMRequest
from nlquery.models.agent import (
    InvalidInputError,
    KnowledgeAnswerInput,
    KnowledgeAnswerOutput,
    LLMError,
    UpstreamError,
)
from nlquery.models.query import RagResult
from nlquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


def format_record(record: dict[str, Any]) -> str:
    payload = record.get("payload") or {}
    name = ".".join(
        str(part)
        for part in (payload.get("database"), payload.get("schema"), payload.get("table"), payload.get("column"))
        if part
    )
    if payload.get("dataType"):
        name += f" ({payload['dataType']})"
    description = payload.get("description") or record.get("document") or ""
    return f"- [{payload.get('sourceType', 'record')}] {name}: {description}".rstrip(": ")


def source_of(record: dict[str, Any]) -> dict[str, Any]:
    payload = record.get("payload") or {}
    source = {
        "id": record.get("id"),
        "sourceType": payload.get("sourceType"),
        "database": payload.get("database"),
        "schema": payload.get("schema"),
        "table": payload.get("table"),
        "column": payload.get("column"),
        "distance": record.get("distance"),
    }
    return {key: value for key, value in source.items() if value is not None}


class KnowledgeAnswerAgent(BaseAgent):
    """Generate an answer from indexed schema knowledge."""

    def __init__(
        self,
        knowledge_store: KnowledgeStore,
        llm_provider: BaseLLMProvider | None = None,
        settings: Settings | None = None,
        prompts: PromptLoader | None = None,
    ):
        super().__init__(name="KnowledgeAnswerAgent")
        self.settings = settings or get_settings()
        self.knowledge_store = knowledge_store

        if llm_provider is None:
            self.llm = LLMProviderFactory.create_default_provider(
                self.settings.llm, model_type="mini"
            )
        else:
            self.llm = llm_provider

        self.prompts = prompts or PromptLoader()

    async def execute(self, input: KnowledgeAnswerInput) -> KnowledgeAnswerOutput:
        rag_result = await self.answer(input.data_source_id, input.query, input.top_k)
        return KnowledgeAnswerOutput(
            success=True,
            rag_result=rag_result,
            data={"sources": len(rag_result.sources)},
            metadata=self._create_metadata(),
        )

    async def answer(self, data_source_id: str, question: str, top_k: int | None = None) -> RagResult:
        """
        Answer a question from the knowledge collection.

        Raises:
            InvalidInputError: If the question is empty
            UpstreamError: If the knowledge store fails
            LLMError: If the model call fails
        """
        if not question or not question.strip():
            raise InvalidInputError(agent=self.name, message="Question must not be empty")

        store = self.knowledge_store
        collection_name = store.collection_name_for(data_source_id)
        limit = top_k or self.settings.knowledge.top_k

        try:
            if not await store.collection_exists(collection_name):
                logger.warning(f"[{self.name}] No knowledge indexed for {data_source_id}")
                return RagResult(
                    content=f"No knowledge has been indexed for data source {data_source_id}.",
                    sources=[],
                )
            records = await store.search(collection_name, query_text=question, limit=limit)
        except KnowledgeStoreError as e:
            raise UpstreamError(
                agent=self.name,
                message=f"Knowledge search failed: {e}",
                context={"data_source_id": data_source_id},
            ) from e

        if not records:
            return RagResult(content="No relevant knowledge was found for this question.", sources=[])

        prompt = self.prompts.render(
            "agents/knowledge_answer.md",
            user_query=question,
            context="\n".join(format_record(record) for record in records),
        )
        try:
            response = await self.llm.generate(
                LLMRequest(
                    messages=[
                        LLMMessage(
                            role="system", content=self.prompts.render("system/data_explainer.md")
                        ),
                        LLMMessage(role="user", content=prompt),
                    ],
                    temperature=self.settings.pipeline.reasoning_temperature,
                )
            )
        except Exception as e:
            raise LLMError(
                agent=self.name,
                message=f"Knowledge answer failed: {e}",
                context={"error_type": type(e).__name__},
            ) from e

        self._track_llm_call(tokens=response.usage.total_tokens)
        logger.info(
            f"[{self.name}] Answered from {len(records)} knowledge records",
            extra={"data_source_id": data_source_id},
        )
        return RagResult(
            content=response.content.strip(),
            sources=[source_of(record) for record in records],
        )
