"""
Agent I/O Models

Pydantic models for agent inputs, outputs, and error handling.
Every pipeline stage consumes an AgentInput subclass and returns an
AgentOutput subclass so the orchestrator can treat stages uniformly.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from nlquery.models.query import (
    ExtractedEntity,
    NLQueryOptions,
    RagResult,
    RoutingDecision,
    SchemaMetadata,
    TabularResult,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentMetadata(BaseModel):
    """Metadata about agent execution."""

    agent_name: str
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    duration_ms: float | None = None
    llm_calls: int = 0
    tokens_used: int | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=False)

    def mark_complete(self) -> None:
        """Mark execution as complete and calculate duration."""
        self.completed_at = _utcnow()
        if self.started_at:
            delta = self.completed_at - self.started_at
            self.duration_ms = delta.total_seconds() * 1000


class AgentInput(BaseModel):
    """
    Base input model for all agents.

    Each agent extends this with its specific input fields.
    """

    query: str = Field(..., description="User's natural language question")
    context: dict[str, Any] = Field(
        default_factory=dict, description="Additional context passed between agents"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "query": "What was total revenue last month?",
                "context": {},
            }
        }
    )


class AgentOutput(BaseModel):
    """
    Base output model for all agents.

    The metadata field tracks execution details for observability.
    """

    success: bool = Field(..., description="Whether the agent executed successfully")
    data: dict[str, Any] = Field(default_factory=dict, description="Agent-specific output data")
    metadata: AgentMetadata = Field(..., description="Execution metadata")


# ============================================================================
# Errors
# ============================================================================


class ErrorKind(StrEnum):
    """How a failure is surfaced to the caller."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class AgentError(Exception):
    """
    Base exception for agent execution errors.

    Attributes:
        agent: Name of the agent that raised the error
        message: Error description
        kind: Caller-facing failure category
        context: Additional context for debugging
    """

    kind = ErrorKind.UPSTREAM

    def __init__(
        self,
        agent: str,
        message: str,
        context: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.context = context or {}
        super().__init__(f"[{agent}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging and CLI output."""
        return {
            "agent": self.agent,
            "message": self.message,
            "kind": str(self.kind),
            "context": self.context,
            "type": self.__class__.__name__,
        }


class InvalidInputError(AgentError):
    """Input rejected before any external call (empty question or SQL, bad parameters)."""

    kind = ErrorKind.INVALID_INPUT


class NotFoundError(AgentError):
    """Data source, database, schema or table does not exist."""

    kind = ErrorKind.NOT_FOUND


class UpstreamError(AgentError):
    """Connector, knowledge store or model failure."""

    kind = ErrorKind.UPSTREAM


class LLMError(UpstreamError):
    """Error during an LLM call."""


class QueryExecutionError(UpstreamError):
    """Error while executing generated SQL."""


# ============================================================================
# SchemaResolverAgent Models
# ============================================================================


class SchemaResolverInput(AgentInput):
    data_source_id: str = Field(..., min_length=1)
    filter_tables: list[str] | None = Field(
        None, description="Allow-list of database.schema.table keys"
    )
    use_knowledge: bool = Field(True, description="Try the knowledge collection first")


class SchemaResolverOutput(AgentOutput):
    schemas: list[SchemaMetadata] = Field(default_factory=list)
    tier: Literal["knowledge", "introspection", "none"] = Field(
        "none", description="Which tier produced the schemas"
    )


# ============================================================================
# RouterAgent Models
# ============================================================================


class RouterInput(AgentInput):
    has_schema: bool | None = Field(
        None, description="Whether structured data is known to be available"
    )


class RouterOutput(AgentOutput):
    decision: RoutingDecision
    entities: list[ExtractedEntity] = Field(default_factory=list)


# ============================================================================
# SQLAgent Models
# ============================================================================


class SQLAgentInput(AgentInput):
    schemas: list[SchemaMetadata] = Field(default_factory=list)
    options: NLQueryOptions = Field(default_factory=NLQueryOptions)
    dialect: str = Field("SQL", description="Target query language")


class GeneratedSQL(BaseModel):
    sql: str = Field(..., description="Trimmed model output")
    model: str | None = Field(None, description="Model that produced the statement")
    tables_in_prompt: list[str] = Field(default_factory=list)


class SQLAgentOutput(AgentOutput):
    generated_sql: GeneratedSQL


# ============================================================================
# ExecutorAgent Models
# ============================================================================


class ExecutorAgentInput(AgentInput):
    data_source_id: str = Field(..., min_length=1)
    sql: str = Field(..., description="Statement to run")


class ExecutorAgentOutput(AgentOutput):
    result: TabularResult


# ============================================================================
# ReasoningAgent Models
# ============================================================================


class ReasoningAgentInput(AgentInput):
    sql: str
    result: TabularResult


class ReasoningAgentOutput(AgentOutput):
    reasoning: str
    fallback_used: bool = False


# ============================================================================
# KnowledgeAnswerAgent Models
# ============================================================================


class KnowledgeAnswerInput(AgentInput):
    data_source_id: str = Field(..., min_length=1)
    top_k: int | None = Field(None, gt=0, le=50)


class KnowledgeAnswerOutput(AgentOutput):
    rag_result: RagResult
