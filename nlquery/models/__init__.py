"""
NLQuery Models Module

Pydantic models for type-safe data validation throughout the application.

Available Models:
    Agent Models:
        - AgentInput / AgentOutput / AgentMetadata: stage I/O base classes
        - AgentError and its kinds: InvalidInputError, NotFoundError,
          UpstreamError, LLMError, QueryExecutionError

    Query Models:
        - ExtractedEntity, EntityCategory
        - SchemaMetadata, ColumnMetadata
        - TabularResult, QueryTiming, NLQueryOptions, NLQueryResult
        - QueryPath, RoutingDecision, RagResult, CodeExecutionResult,
          HybridResult, QueryResponse

    Data Sources:
        - DataSource, load_data_sources

Usage:
    from nlquery.models import NLQueryOptions, QueryPath
    from nlquery.models.agent import InvalidInputError
"""

from nlquery.models.agent import (
    AgentError,
    AgentInput,
    AgentMetadata,
    AgentOutput,
    ErrorKind,
    InvalidInputError,
    LLMError,
    NotFoundError,
    QueryExecutionError,
    UpstreamError,
)
from nlquery.models.datasource import DataSource, load_data_sources
from nlquery.models.query import (
    CodeExecutionResult,
    ColumnMetadata,
    EntityCategory,
    ExtractedEntity,
    HybridResult,
    NLQueryOptions,
    NLQueryResult,
    QueryPath,
    QueryResponse,
    QueryTiming,
    RagResult,
    RoutingDecision,
    SchemaMetadata,
    TabularResult,
    table_key,
)

__all__ = [
    # Agent models
    "AgentInput",
    "AgentOutput",
    "AgentMetadata",
    "AgentError",
    "ErrorKind",
    "InvalidInputError",
    "NotFoundError",
    "UpstreamError",
    "LLMError",
    "QueryExecutionError",
    # Query models
    "EntityCategory",
    "ExtractedEntity",
    "ColumnMetadata",
    "SchemaMetadata",
    "table_key",
    "TabularResult",
    "QueryTiming",
    "NLQueryOptions",
    "NLQueryResult",
    "QueryPath",
    "RoutingDecision",
    "RagResult",
    "CodeExecutionResult",
    "HybridResult",
    "QueryResponse",
    # Data sources
    "DataSource",
    "load_data_sources",
]
