"""Schema knowledge: per-data-source Chroma collections of table and column records."""

from nlquery.knowledge.descriptions import infer_column_description, infer_table_purpose
from nlquery.knowledge.vectors import (
    SOURCE_TYPE_COLUMN,
    SOURCE_TYPE_TABLE,
    KnowledgeStore,
    KnowledgeStoreError,
    build_where,
)

__all__ = [
    "KnowledgeStore",
    "KnowledgeStoreError",
    "SOURCE_TYPE_TABLE",
    "SOURCE_TYPE_COLUMN",
    "build_where",
    "infer_table_purpose",
    "infer_column_description",
]
