"""Pipeline orchestration and routed query handling."""

from nlquery.pipeline.dual_path import QueryRoutingService, create_routing_service
from nlquery.pipeline.orchestrator import (
    NLQueryPipeline,
    PipelineState,
    build_knowledge_store,
    create_pipeline,
)

__all__ = [
    "NLQueryPipeline",
    "PipelineState",
    "QueryRoutingService",
    "build_knowledge_store",
    "create_pipeline",
    "create_routing_service",
]
