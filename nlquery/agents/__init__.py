"""Pipeline agents."""

from nlquery.agents.base import BaseAgent
from nlquery.agents.entities import EntityExtractor, EntityRule, extract, extract_entities
from nlquery.agents.executor import ExecutorAgent
from nlquery.agents.knowledge_answer import KnowledgeAnswerAgent
from nlquery.agents.reasoning import FALLBACK_REASONING, ReasoningAgent
from nlquery.agents.router import (
    HeuristicRouteClassifier,
    LLMRouteClassifier,
    RouteClassifier,
    RouterAgent,
)
from nlquery.agents.schema_resolver import SchemaResolverAgent
from nlquery.agents.sql import SQLAgent, build_schema_context

__all__ = [
    "BaseAgent",
    "EntityExtractor",
    "EntityRule",
    "extract",
    "extract_entities",
    "ExecutorAgent",
    "KnowledgeAnswerAgent",
    "FALLBACK_REASONING",
    "ReasoningAgent",
    "HeuristicRouteClassifier",
    "LLMRouteClassifier",
    "RouteClassifier",
    "RouterAgent",
    "SchemaResolverAgent",
    "SQLAgent",
    "build_schema_context",
]
