"""
Routed query service

Routes a question, dispatches it to the knowledge answer path, the
code-execution pipeline or both, and wraps the outcome in a QueryResponse
whose payload always matches the chosen path.
"""

import asyncio
import logging

from nlquery.agents.knowledge_answer import KnowledgeAnswerAgent
from nlquery.agents.router import HeuristicRouteClassifier, LLMRouteClassifier, RouterAgent
from nlquery.config import Settings, get_settings
from nlquery.connectors.registry import ConnectionRegistry
from nlquery.knowledge.vectors import KnowledgeStore
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.factory import LLMProviderFactory
from nlquery.models.query import (
    CodeExecutionResult,
    HybridResult,
    NLQueryOptions,
    QueryPath,
    QueryResponse,
    RagResult,
)
from nlquery.notifications import StatusNotifier
from nlquery.pipeline.orchestrator import NLQueryPipeline, build_knowledge_store, create_pipeline

logger = logging.getLogger(__name__)


class QueryRoutingService:
    """
    Answer a question along the routed path.

    Usage:
        service = await create_routing_service()
        response = await service.handle("sales", "What was total revenue last month?")
        response.to_wire()  # {"routing": {...}, "result": {...}}
    """

    def __init__(
        self,
        router: RouterAgent,
        pipeline: NLQueryPipeline,
        knowledge_answer: KnowledgeAnswerAgent,
    ):
        self.router = router
        self.pipeline = pipeline
        self.knowledge_answer = knowledge_answer

    async def handle(
        self,
        data_source_id: str,
        question: str,
        options: NLQueryOptions | None = None,
    ) -> QueryResponse:
        """
        Route and answer a question.

        Raises:
            AgentError: When the chosen path fails (for hybrid, when both fail)
        """
        decision = await self.router.route(question)

        if decision.path == QueryPath.RAG:
            result = await self._run_rag(data_source_id, question)
        elif decision.path == QueryPath.CODE_EXECUTION:
            result = await self._run_code(data_source_id, question, options)
        else:
            result = await self._run_hybrid(data_source_id, question, options)

        return QueryResponse(routing=decision, result=result)

    async def _run_rag(self, data_source_id: str, question: str) -> RagResult:
        return await self.knowledge_answer.answer(data_source_id, question)

    async def _run_code(
        self, data_source_id: str, question: str, options: NLQueryOptions | None
    ) -> CodeExecutionResult:
        data = await self.pipeline.run(data_source_id, question, options)
        return CodeExecutionResult(content=data.reasoning, data=data)

    async def _run_hybrid(
        self, data_source_id: str, question: str, options: NLQueryOptions | None
    ) -> HybridResult:
        rag, code = await asyncio.gather(
            self._run_rag(data_source_id, question),
            self._run_code(data_source_id, question, options),
            return_exceptions=True,
        )

        for branch, outcome in (("rag", rag), ("code_execution", code)):
            if isinstance(outcome, BaseException):
                logger.warning(
                    f"Hybrid {branch} branch failed: {outcome}",
                    extra={"data_source_id": data_source_id, "branch": branch},
                )

        rag_ok = not isinstance(rag, BaseException)
        code_ok = not isinstance(code, BaseException)
        if not rag_ok and not code_ok:
            raise code

        return HybridResult(
            rag_result=rag if rag_ok else None,
            code_execution_result=code if code_ok else None,
        )


async def create_routing_service(
    settings: Settings | None = None,
    connectors: ConnectionRegistry | None = None,
    knowledge_store: KnowledgeStore | None = None,
    llm_provider: BaseLLMProvider | None = None,
    notifier: StatusNotifier | None = None,
) -> QueryRoutingService:
    """Create a QueryRoutingService sharing one registry and knowledge store."""
    settings = settings or get_settings()

    if connectors is None:
        connectors = ConnectionRegistry.from_settings(settings)
    if knowledge_store is None:
        knowledge_store = build_knowledge_store(settings)
        await knowledge_store.initialize()

    if settings.pipeline.router_mode == "llm":
        router_llm = llm_provider or LLMProviderFactory.create_agent_provider(
            agent_name="router", config=settings.llm, model_type="mini"
        )
        classifier = LLMRouteClassifier(router_llm)
    else:
        classifier = HeuristicRouteClassifier()

    pipeline = await create_pipeline(
        settings=settings,
        connectors=connectors,
        knowledge_store=knowledge_store,
        llm_provider=llm_provider,
        notifier=notifier,
    )
    return QueryRoutingService(
        router=RouterAgent(classifier=classifier),
        pipeline=pipeline,
        knowledge_answer=KnowledgeAnswerAgent(
            knowledge_store=knowledge_store, llm_provider=llm_provider, settings=settings
        ),
    )
