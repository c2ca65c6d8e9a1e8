"""
Query Models

Value types that flow through the pipeline: extracted entities, schema
metadata, routing decisions, tabular results and the routed response
envelope. Models that appear on the wire serialize with camelCase aliases
through `to_wire()`.
"""

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exposed in the response envelope."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Entities
# ============================================================================


class EntityCategory(StrEnum):
    """Category attached to every extracted entity."""

    TIME_PERIOD = "time_period"
    DATE = "date"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    METRIC = "metric"
    DIMENSION = "dimension"
    NAMED_ENTITY = "named_entity"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"
    RANGE = "range"
    COMPARISON = "comparison"
    NUMBER = "number"


class ExtractedEntity(BaseModel):
    """Substring of a question matched by an extraction rule."""

    value: str = Field(..., min_length=1, description="Matched text, as written")
    category: EntityCategory = Field(..., description="Rule category")

    model_config = ConfigDict(frozen=True)


# ============================================================================
# Schema Metadata
# ============================================================================


class ColumnMetadata(BaseModel):
    """Column of a resolved table."""

    name: str = Field(..., min_length=1)
    type: str = Field(default="string", description="Source data type")
    description: str | None = None


class SchemaMetadata(BaseModel):
    """
    Normalized description of one table.

    `key` (database.schema.table) is unique within a resolution result and
    `columns` is never empty.
    """

    database: str
    schema_name: str = Field(..., alias="schema")
    table: str
    description: str | None = None
    row_count: int | None = Field(None, ge=0)
    sample_rows: list[list[Any]] | None = None
    columns: list[ColumnMetadata] = Field(..., min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def key(self) -> str:
        return table_key(self.database, self.schema_name, self.table)


def table_key(database: str, schema: str, table: str) -> str:
    """Fully qualified `database.schema.table` identity of a table."""
    return f"{database}.{schema}.{table}"


# ============================================================================
# Execution Results
# ============================================================================


class TabularResult(WireModel):
    """Normalized result of an executed statement."""

    columns: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)
    row_count: int = Field(0, ge=0)
    status: Literal["success"] = "success"
    metadata: dict[str, Any] = Field(default_factory=dict)


class QueryTiming(WireModel):
    """
    Stage latencies in milliseconds.

    `total` spans the whole run, reasoning included when it ran.
    """

    total: float = Field(..., ge=0.0)
    sql_generation: float = Field(..., ge=0.0)
    execution: float = Field(..., ge=0.0)
    reasoning: float | None = Field(None, ge=0.0)


class NLQueryOptions(BaseModel):
    """Per-request pipeline options."""

    model: str | None = Field(None, description="Model override for SQL generation")
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    include_reasoning: bool | None = Field(
        None, description="Explain the result (None = settings default)"
    )
    filter_tables: list[str] | None = Field(
        None, description="Allow-list of database.schema.table keys"
    )
    use_knowledge_collections: bool = Field(
        True, description="Read the knowledge collection before introspecting"
    )


class NLQueryResult(WireModel):
    """Outcome of one code-execution pipeline run."""

    sql: str = Field(..., min_length=1)
    result: TabularResult
    reasoning: str | None = None
    timing: QueryTiming
    tables_used: list[str] = Field(default_factory=list)


# ============================================================================
# Routing
# ============================================================================


class QueryPath(StrEnum):
    """Processing path chosen for a question."""

    RAG = "rag"
    CODE_EXECUTION = "code_execution"
    HYBRID = "hybrid"


class RoutingDecision(WireModel):
    """Single path chosen for a question."""

    path: QueryPath
    confidence: float = Field(..., ge=0.0, le=1.0)
    processing_time_ms: float | None = Field(
        None, ge=0.0, serialization_alias="processingTime"
    )


class RagResult(WireModel):
    content: str
    sources: list[dict[str, Any]] = Field(default_factory=list)


class CodeExecutionResult(WireModel):
    content: str | None = None
    data: NLQueryResult


class HybridResult(WireModel):
    rag_result: RagResult | None = None
    code_execution_result: CodeExecutionResult | None = None

    @model_validator(mode="after")
    def require_one_branch(self) -> "HybridResult":
        if self.rag_result is None and self.code_execution_result is None:
            raise ValueError("hybrid result needs at least one branch")
        return self


_PAYLOAD_TYPES = {
    QueryPath.RAG: RagResult,
    QueryPath.CODE_EXECUTION: CodeExecutionResult,
    QueryPath.HYBRID: HybridResult,
}


class QueryResponse(WireModel):
    """Routed response envelope; the payload type always matches the path."""

    routing: RoutingDecision
    result: RagResult | CodeExecutionResult | HybridResult

    @model_validator(mode="after")
    def payload_matches_path(self) -> "QueryResponse":
        expected = _PAYLOAD_TYPES[self.routing.path]
        if not isinstance(self.result, expected):
            raise ValueError(
                f"path {self.routing.path} requires {expected.__name__}, "
                f"got {type(self.result).__name__}"
            )
        return self
