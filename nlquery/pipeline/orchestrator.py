"""
NLQuery Pipeline Orchestrator

LangGraph-based pipeline that sequences the code-execution path:
- SchemaResolverAgent → SQLAgent → ExecutorAgent → (ReasoningAgent)
- Per-stage latency measured from perf_counter timestamps
- Status events (processing / completed / failed) per run

Schema resolution and reasoning never fail a run. Generation and execution
failures stop the graph and are re-raised to the caller.
"""

import logging
import time
from typing import TypedDict

from langgraph.graph import END, StateGraph

from nlquery.agents.executor import ExecutorAgent
from nlquery.agents.reasoning import ReasoningAgent
from nlquery.agents.schema_resolver import SchemaResolverAgent
from nlquery.agents.sql import SQLAgent
from nlquery.config import Settings, get_settings
from nlquery.connectors.base import ConnectorError, ConnectorErrorKind
from nlquery.connectors.registry import ConnectionRegistry
from nlquery.knowledge.vectors import KnowledgeStore
from nlquery.llm.base import BaseLLMProvider
from nlquery.models.agent import AgentError, InvalidInputError, NotFoundError, UpstreamError
from nlquery.models.query import (
    NLQueryOptions,
    NLQueryResult,
    QueryTiming,
    SchemaMetadata,
    TabularResult,
)
from nlquery.notifications import LoggingStatusNotifier, StatusEvent, StatusNotifier, safe_notify

logger = logging.getLogger(__name__)

DEFAULT_DIALECT = "SQL"


# ============================================================================
# Pipeline State Schema
# ============================================================================


class PipelineState(TypedDict, total=False):
    """
    State schema for one code-execution run.

    Each node reads the outputs of the previous stages and records its own
    elapsed time under `stage_timings`.
    """

    # Input
    query: str
    data_source_id: str
    options: NLQueryOptions
    include_reasoning: bool

    # Schema output
    schemas: list[SchemaMetadata]
    schema_tier: str | None

    # SQL output
    dialect: str
    generated_sql: str | None

    # Executor output
    result: TabularResult | None

    # Reasoning output
    reasoning: str | None

    # Metadata
    current_stage: str | None
    stage_timings: dict[str, float]
    error: AgentError | None


class NLQueryPipeline:
    """
    Code-execution pipeline over the pipeline agents.

    Usage:
        pipeline = await create_pipeline()
        result = await pipeline.run("sales", "What was total revenue last month?")
        print(result.sql, result.result.row_count)
    """

    def __init__(
        self,
        schema_resolver: SchemaResolverAgent,
        sql_agent: SQLAgent,
        executor: ExecutorAgent,
        connectors: ConnectionRegistry,
        reasoning_agent: ReasoningAgent | None = None,
        notifier: StatusNotifier | None = None,
        settings: Settings | None = None,
    ):
        self.schema_resolver = schema_resolver
        self.sql = sql_agent
        self.executor = executor
        self.connectors = connectors
        self.reasoning = reasoning_agent
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.graph = self._build_graph()

    # ========================================================================
    # Graph Construction
    # ========================================================================

    def _build_graph(self):
        workflow = StateGraph(PipelineState)

        workflow.add_node("schema", self._run_schema)
        workflow.add_node("sql", self._run_sql)
        workflow.add_node("executor", self._run_executor)
        workflow.add_node("reasoning", self._run_reasoning)

        workflow.set_entry_point("schema")
        workflow.add_edge("schema", "sql")
        workflow.add_conditional_edges(
            "sql",
            self._should_execute,
            {"execute": "executor", "end": END},
        )
        workflow.add_conditional_edges(
            "executor",
            self._should_explain,
            {"reasoning": "reasoning", "end": END},
        )
        workflow.add_edge("reasoning", END)

        return workflow.compile()

    # ========================================================================
    # Nodes
    # ========================================================================

    async def _run_schema(self, state: PipelineState) -> PipelineState:
        """Resolve schema context. Never fails the run."""
        start = time.perf_counter()
        state["current_stage"] = "schema"

        options = state["options"]
        schemas, tier = await self.schema_resolver.resolve_with_tier(
            state["data_source_id"],
            filter_tables=options.filter_tables,
            use_knowledge=options.use_knowledge_collections,
        )
        state["schemas"] = schemas
        state["schema_tier"] = tier

        elapsed = (time.perf_counter() - start) * 1000
        state["stage_timings"]["schema"] = elapsed
        logger.info(f"Schema resolved: {len(schemas)} tables ({tier}) in {elapsed:.1f}ms")
        return state

    async def _run_sql(self, state: PipelineState) -> PipelineState:
        """Generate the statement."""
        start = time.perf_counter()
        state["current_stage"] = "sql"

        try:
            state["dialect"] = self._resolve_dialect(state["data_source_id"])
            sql = await self.sql.generate(
                state["query"],
                state["schemas"],
                state["options"],
                dialect=state["dialect"],
            )
            state["generated_sql"] = sql
            if not sql.strip():
                state["error"] = InvalidInputError(
                    agent=self.sql.name,
                    message="Generated SQL is empty",
                    context={"data_source_id": state["data_source_id"]},
                )
        except Exception as e:
            state["error"] = self._as_agent_error(e, self.sql.name)

        elapsed = (time.perf_counter() - start) * 1000
        state["stage_timings"]["sql_generation"] = elapsed
        if not state.get("error"):
            logger.info(f"SQL generated in {elapsed:.1f}ms")
        return state

    async def _run_executor(self, state: PipelineState) -> PipelineState:
        """Execute the generated statement."""
        start = time.perf_counter()
        state["current_stage"] = "executor"

        try:
            state["result"] = await self.executor.execute_sql(
                state["data_source_id"], state["generated_sql"]
            )
        except Exception as e:
            state["error"] = self._as_agent_error(e, self.executor.name)

        elapsed = (time.perf_counter() - start) * 1000
        state["stage_timings"]["execution"] = elapsed
        if not state.get("error"):
            logger.info(f"Query executed in {elapsed:.1f}ms ({state['result'].row_count} rows)")
        return state

    async def _run_reasoning(self, state: PipelineState) -> PipelineState:
        """Explain the result. Never fails the run."""
        start = time.perf_counter()
        state["current_stage"] = "reasoning"

        state["reasoning"] = await self.reasoning.explain(
            state["query"], state["generated_sql"], state["result"]
        )

        elapsed = (time.perf_counter() - start) * 1000
        state["stage_timings"]["reasoning"] = elapsed
        logger.info(f"Reasoning generated in {elapsed:.1f}ms")
        return state

    # ========================================================================
    # Routing
    # ========================================================================

    def _should_execute(self, state: PipelineState) -> str:
        if state.get("error") or not (state.get("generated_sql") or "").strip():
            return "end"
        return "execute"

    def _should_explain(self, state: PipelineState) -> str:
        if state.get("error") or not state.get("include_reasoning") or self.reasoning is None:
            return "end"
        return "reasoning"

    # ========================================================================
    # Public API
    # ========================================================================

    async def run(
        self,
        data_source_id: str,
        query: str,
        options: NLQueryOptions | None = None,
    ) -> NLQueryResult:
        """
        Run the code-execution path for a question.

        Args:
            data_source_id: Registered data source to query
            query: User's natural language question
            options: Per-request options

        Returns:
            NLQueryResult with SQL, tabular result, optional reasoning and timing

        Raises:
            InvalidInputError: Empty question, or the model produced no SQL
            NotFoundError: Unknown data source or missing object
            UpstreamError: Generation or execution failure
        """
        options = options or NLQueryOptions()
        if not query or not query.strip():
            raise InvalidInputError(agent="NLQueryPipeline", message="Question must not be empty")

        include_reasoning = (
            options.include_reasoning
            if options.include_reasoning is not None
            else self.settings.pipeline.include_reasoning
        )
        organization_id = self._organization_for(data_source_id)

        initial_state: PipelineState = {
            "query": query,
            "data_source_id": data_source_id,
            "options": options,
            "include_reasoning": include_reasoning,
            "schemas": [],
            "schema_tier": None,
            "dialect": DEFAULT_DIALECT,
            "generated_sql": None,
            "result": None,
            "reasoning": None,
            "current_stage": None,
            "stage_timings": {},
            "error": None,
        }

        logger.info(
            f"Starting pipeline for {data_source_id}: {query[:100]}",
            extra={"data_source_id": data_source_id, "include_reasoning": include_reasoning},
        )
        await safe_notify(
            self.notifier,
            StatusEvent(
                data_source_id=data_source_id, organization_id=organization_id, status="processing"
            ),
        )

        start = time.perf_counter()
        final = await self.graph.ainvoke(initial_state)
        total = (time.perf_counter() - start) * 1000

        error = final.get("error")
        if error is not None:
            logger.error(
                f"Pipeline failed at {final.get('current_stage')}: {error}",
                extra={"data_source_id": data_source_id, "error": error.to_dict()},
            )
            await safe_notify(
                self.notifier,
                StatusEvent(
                    data_source_id=data_source_id,
                    organization_id=organization_id,
                    status="failed",
                    error=error.message,
                ),
            )
            raise error

        timings = final["stage_timings"]
        result = NLQueryResult(
            sql=final["generated_sql"],
            result=final["result"],
            reasoning=final.get("reasoning"),
            timing=QueryTiming(
                total=total,
                sql_generation=timings["sql_generation"],
                execution=timings["execution"],
                reasoning=timings.get("reasoning"),
            ),
            tables_used=[schema.key for schema in final["schemas"]],
        )

        logger.info(
            f"Pipeline complete in {total:.1f}ms",
            extra={"data_source_id": data_source_id, "row_count": result.result.row_count},
        )
        await safe_notify(
            self.notifier,
            StatusEvent(
                data_source_id=data_source_id,
                organization_id=organization_id,
                status="completed",
                metrics={
                    "total_ms": total,
                    "sql_generation_ms": result.timing.sql_generation,
                    "execution_ms": result.timing.execution,
                    "row_count": result.result.row_count,
                },
            ),
        )
        return result

    # ========================================================================
    # Helpers
    # ========================================================================

    def _resolve_dialect(self, data_source_id: str) -> str:
        try:
            return self.connectors.dialect(data_source_id)
        except ConnectorError as e:
            if e.kind == ConnectorErrorKind.NOT_FOUND:
                raise NotFoundError(
                    agent="NLQueryPipeline",
                    message=e.message,
                    context={"data_source_id": data_source_id},
                ) from e
            logger.warning(f"Could not determine dialect for {data_source_id}: {e}")
            return DEFAULT_DIALECT

    def _organization_for(self, data_source_id: str) -> str | None:
        try:
            return self.connectors.get_data_source(data_source_id).organization_id
        except ConnectorError:
            return None

    @staticmethod
    def _as_agent_error(error: Exception, agent: str) -> AgentError:
        if isinstance(error, AgentError):
            return error
        logger.error(f"Unexpected error in {agent}: {error}", exc_info=True)
        return UpstreamError(
            agent=agent,
            message=f"Unexpected error: {error}",
            context={"error_type": type(error).__name__},
        )


def build_knowledge_store(settings: Settings) -> KnowledgeStore:
    """KnowledgeStore configured from settings (not yet initialized)."""
    return KnowledgeStore(
        persist_directory=settings.knowledge.persist_dir,
        embedding_model=settings.knowledge.embedding_model,
        openai_api_key=settings.llm.openai_api_key,
        collection_prefix=settings.knowledge.collection_prefix,
        source_tag=settings.knowledge.source_tag,
    )


async def create_pipeline(
    settings: Settings | None = None,
    connectors: ConnectionRegistry | None = None,
    knowledge_store: KnowledgeStore | None = None,
    llm_provider: BaseLLMProvider | None = None,
    notifier: StatusNotifier | None = None,
) -> NLQueryPipeline:
    """
    Create an NLQueryPipeline with all dependencies initialized.

    Args:
        settings: Settings (uses get_settings() if not provided)
        connectors: Registry (built from the data source file if not provided)
        knowledge_store: Initialized store (created and initialized if not provided)
        llm_provider: Provider shared by all agents (per-agent providers if not provided)
        notifier: Status sink (logs events if not provided)

    Returns:
        Initialized pipeline
    """
    settings = settings or get_settings()

    if connectors is None:
        connectors = ConnectionRegistry.from_settings(settings)
    if knowledge_store is None:
        knowledge_store = build_knowledge_store(settings)
        await knowledge_store.initialize()

    return NLQueryPipeline(
        schema_resolver=SchemaResolverAgent(
            knowledge_store=knowledge_store, connectors=connectors, settings=settings
        ),
        sql_agent=SQLAgent(llm_provider=llm_provider, settings=settings),
        executor=ExecutorAgent(connectors=connectors),
        connectors=connectors,
        reasoning_agent=ReasoningAgent(llm_provider=llm_provider, settings=settings),
        notifier=notifier or LoggingStatusNotifier(),
        settings=settings,
    )
