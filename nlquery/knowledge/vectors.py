"""
Knowledge Store

Chroma-backed store of schema metadata records, one collection per data
source (`<prefix><data_source_id>`). Each record carries a payload with
`source`, `sourceType` (table or column) and the table/column identity,
and a short document used for semantic search. Column records also keep
their `ordinal` position within the table.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings
from chromadb.utils.embedding_functions import OpenAIEmbeddingFunction

from nlquery.config import get_settings
from nlquery.knowledge.descriptions import infer_column_description, infer_table_purpose
from nlquery.models.query import SchemaMetadata

logger = logging.getLogger(__name__)

SOURCE_TYPE_TABLE = "table"
SOURCE_TYPE_COLUMN = "column"


class KnowledgeStoreError(Exception):
    """Raised when knowledge store operations fail."""


def build_where(filters: dict[str, Any] | None) -> dict[str, Any] | None:
    """Translate a flat equality mapping into a Chroma `where` clause."""
    if not filters:
        return None
    clauses = [{key: {"$eq": value}} for key, value in filters.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class KnowledgeStore:
    """
    Per-data-source schema knowledge using Chroma.

    Usage:
        store = KnowledgeStore()
        await store.initialize()

        await store.index_schemas("sales", schemas)
        name = store.collection_name_for("sales")
        if await store.collection_exists(name):
            tables = await store.search(name, filters={"sourceType": "table"}, limit=100)
    """

    def __init__(
        self,
        persist_directory: str | Path | None = None,
        embedding_model: str | None = None,
        openai_api_key: str | None = None,
        collection_prefix: str | None = None,
        source_tag: str | None = None,
    ):
        """
        Initialize the knowledge store.

        Args:
            persist_directory: Directory for persistence (default from config)
            embedding_model: OpenAI embedding model (default from config)
            openai_api_key: OpenAI API key (default from config)
            collection_prefix: Collection name prefix (default from config)
            source_tag: Value written to each record's `source` field
        """
        # Only load config if needed (allows tests to avoid config validation)
        if None in (persist_directory, embedding_model, openai_api_key, collection_prefix, source_tag):
            config = get_settings()
            persist_directory = persist_directory or config.knowledge.persist_dir
            embedding_model = embedding_model or config.knowledge.embedding_model
            openai_api_key = openai_api_key or config.llm.openai_api_key
            collection_prefix = (
                collection_prefix if collection_prefix is not None else config.knowledge.collection_prefix
            )
            source_tag = source_tag or config.knowledge.source_tag

        self.persist_directory = Path(persist_directory)
        self.embedding_model = embedding_model
        self.openai_api_key = openai_api_key
        self.collection_prefix = collection_prefix
        self.source_tag = source_tag

        self.client: chromadb.ClientAPI | None = None
        self.embedding_function: OpenAIEmbeddingFunction | None = None
        self._collections: dict[str, chromadb.Collection] = {}

        logger.info(
            f"KnowledgeStore configured: persist_dir={self.persist_directory}, "
            f"prefix={self.collection_prefix}, embedding_model={self.embedding_model}"
        )

    async def initialize(self) -> None:
        """
        Initialize the Chroma client and embedding function.

        Raises:
            KnowledgeStoreError: If initialization fails
        """
        try:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self._init_client)
        except Exception as e:
            logger.error(f"Failed to initialize KnowledgeStore: {e}")
            raise KnowledgeStoreError(f"Initialization failed: {e}") from e
        logger.info("KnowledgeStore initialized successfully")

    def _init_client(self) -> None:
        self.client = chromadb.PersistentClient(
            path=str(self.persist_directory),
            settings=Settings(anonymized_telemetry=False, allow_reset=True),
        )
        self.embedding_function = OpenAIEmbeddingFunction(
            api_key=self.openai_api_key,
            model_name=self.embedding_model,
        )

    def collection_name_for(self, data_source_id: str) -> str:
        return f"{self.collection_prefix}{data_source_id}"

    async def collection_exists(self, name: str) -> bool:
        """Check for a collection without creating it."""
        self._require_client()
        try:
            collections = await asyncio.to_thread(self.client.list_collections)
        except Exception as e:
            logger.error(f"Failed to list collections: {e}")
            raise KnowledgeStoreError(f"Failed to list collections: {e}") from e
        # Chroma returns names (>= 0.6) or Collection objects (older releases)
        names = {c if isinstance(c, str) else c.name for c in collections}
        return name in names

    async def search(
        self,
        collection_name: str,
        query_text: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """
        Read records from a collection.

        With query text the records are ranked by semantic similarity; without
        one every record matching `filters` is returned up to `limit`.

        Args:
            collection_name: Collection to read
            query_text: Optional search text
            filters: Equality filters on payload fields
            limit: Maximum number of records

        Returns:
            Records with id, payload, document and distance (None without query_text)

        Raises:
            KnowledgeStoreError: If the read fails
        """
        collection = await self._get_collection(collection_name, create=False)
        where = build_where(filters)

        try:
            if query_text:
                raw = await asyncio.to_thread(
                    collection.query,
                    query_texts=[query_text],
                    n_results=limit,
                    where=where,
                )
                records = self._format_query_results(raw)
            else:
                raw = await asyncio.to_thread(
                    collection.get,
                    where=where,
                    limit=limit,
                    include=["metadatas", "documents"],
                )
                records = self._format_get_results(raw)
        except Exception as e:
            logger.error(f"Search in {collection_name} failed: {e}")
            raise KnowledgeStoreError(f"Search failed: {e}") from e

        logger.debug(
            f"Search in {collection_name} returned {len(records)} records",
            extra={"collection": collection_name, "filters": filters, "query_text": bool(query_text)},
        )
        return records

    async def index_schemas(
        self,
        data_source_id: str,
        schemas: list[SchemaMetadata],
        batch_size: int = 100,
        prune: bool = False,
    ) -> int:
        """
        Write table and column records for a data source.

        Each indexed table replaces every earlier record of that table, so
        dropped columns disappear with it. With `prune`, tables that are not
        in `schemas` are removed as well (a full re-index). Missing
        descriptions are filled in from names and types.

        Returns:
            Number of records written

        Raises:
            KnowledgeStoreError: If writing fails
        """
        if not schemas:
            logger.warning(f"No schemas to index for {data_source_id}")
            return 0

        collection = await self._get_collection(
            self.collection_name_for(data_source_id), create=True
        )

        ids: list[str] = []
        documents: list[str] = []
        metadatas: list[dict[str, Any]] = []
        for schema in schemas:
            for record_id, document, payload in self._records_for(schema):
                ids.append(record_id)
                documents.append(document)
                metadatas.append(payload)

        try:
            stale = {(s.database, s.schema_name, s.table) for s in schemas}
            if prune:
                stale |= await self._indexed_tables(collection)
            for ref in stale:
                await self._delete_table(collection, ref)

            for start in range(0, len(ids), batch_size):
                end = start + batch_size
                await asyncio.to_thread(
                    collection.upsert,
                    ids=ids[start:end],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )
        except Exception as e:
            logger.error(f"Failed to index schemas for {data_source_id}: {e}")
            raise KnowledgeStoreError(f"Failed to index schemas: {e}") from e

        logger.info(
            f"Indexed {len(schemas)} tables ({len(ids)} records) for {data_source_id}",
            extra={"data_source_id": data_source_id, "records": len(ids), "prune": prune},
        )
        return len(ids)

    async def delete_tables(self, data_source_id: str, refs: list[tuple[str, str, str]]) -> None:
        """Remove the records of the given (database, schema, table) refs."""
        name = self.collection_name_for(data_source_id)
        if not await self.collection_exists(name):
            return
        collection = await self._get_collection(name, create=False)
        try:
            for ref in refs:
                await self._delete_table(collection, ref)
        except Exception as e:
            logger.error(f"Failed to delete tables from {name}: {e}")
            raise KnowledgeStoreError(f"Failed to delete tables: {e}") from e

    async def _indexed_tables(self, collection: chromadb.Collection) -> set[tuple[str, str, str]]:
        raw = await asyncio.to_thread(
            collection.get,
            where=build_where({"source": self.source_tag, "sourceType": SOURCE_TYPE_TABLE}),
            include=["metadatas"],
        )
        refs = set()
        for payload in raw.get("metadatas") or []:
            if payload and payload.get("table"):
                refs.add((payload.get("database", ""), payload.get("schema", ""), payload["table"]))
        return refs

    async def _delete_table(self, collection: chromadb.Collection, ref: tuple[str, str, str]) -> None:
        database, schema, table = ref
        await asyncio.to_thread(
            collection.delete,
            where=build_where(
                {"source": self.source_tag, "database": database, "schema": schema, "table": table}
            ),
        )

    async def find_relevant_tables(
        self, data_source_id: str, question: str, limit: int = 5
    ) -> list[dict[str, Any]]:
        """Table records most similar to a question; empty when nothing is indexed."""
        name = self.collection_name_for(data_source_id)
        if not await self.collection_exists(name):
            return []
        return await self.search(
            name,
            query_text=question,
            filters={"source": self.source_tag, "sourceType": SOURCE_TYPE_TABLE},
            limit=limit,
        )

    async def delete_collection(self, data_source_id: str) -> bool:
        """Drop a data source's collection. Returns False if it did not exist."""
        name = self.collection_name_for(data_source_id)
        if not await self.collection_exists(name):
            return False
        try:
            await asyncio.to_thread(self.client.delete_collection, name)
        except Exception as e:
            logger.error(f"Failed to delete collection {name}: {e}")
            raise KnowledgeStoreError(f"Failed to delete collection: {e}") from e
        self._collections.pop(name, None)
        logger.info(f"Deleted knowledge collection {name}")
        return True

    async def count(self, collection_name: str) -> int:
        collection = await self._get_collection(collection_name, create=False)
        return await asyncio.to_thread(collection.count)

    def _records_for(self, schema: SchemaMetadata):
        base = {
            "source": self.source_tag,
            "database": schema.database,
            "schema": schema.schema_name,
            "table": schema.table,
        }
        column_names = [column.name for column in schema.columns]
        table_description = schema.description or infer_table_purpose(
            schema.table, column_names, schema.row_count
        )
        table_payload = {
            **base,
            "sourceType": SOURCE_TYPE_TABLE,
            "description": table_description,
            "rowCount": schema.row_count,
        }
        yield (
            f"table:{schema.key}",
            f"Table {schema.key}: {table_description}. Columns: {', '.join(column_names)}",
            _drop_none(table_payload),
        )

        for ordinal, column in enumerate(schema.columns):
            description = column.description or infer_column_description(column.name, column.type)
            column_payload = {
                **base,
                "sourceType": SOURCE_TYPE_COLUMN,
                "column": column.name,
                "dataType": column.type,
                "description": description,
                "ordinal": ordinal,
            }
            yield (
                f"column:{schema.key}.{column.name}",
                f"Column {column.name} ({column.type}) of {schema.key}: {description}",
                _drop_none(column_payload),
            )

    async def _get_collection(self, name: str, create: bool) -> chromadb.Collection:
        self._require_client()
        if name in self._collections:
            return self._collections[name]
        try:
            if create:
                collection = await asyncio.to_thread(
                    self.client.get_or_create_collection,
                    name=name,
                    metadata={"hnsw:space": "cosine"},
                    embedding_function=self.embedding_function,
                )
            else:
                collection = await asyncio.to_thread(
                    self.client.get_collection,
                    name=name,
                    embedding_function=self.embedding_function,
                )
        except Exception as e:
            logger.error(f"Failed to open collection {name}: {e}")
            raise KnowledgeStoreError(f"Failed to open collection {name}: {e}") from e
        self._collections[name] = collection
        return collection

    def _require_client(self) -> None:
        if self.client is None:
            raise KnowledgeStoreError("KnowledgeStore not initialized. Call initialize() first.")

    @staticmethod
    def _format_query_results(raw: dict[str, Any]) -> list[dict[str, Any]]:
        ids = (raw.get("ids") or [[]])[0]
        metadatas = (raw.get("metadatas") or [[]])[0] or []
        documents = (raw.get("documents") or [[]])[0] or []
        distances = (raw.get("distances") or [[]])[0] or []
        return [
            {
                "id": record_id,
                "payload": metadatas[i] if i < len(metadatas) and metadatas[i] else {},
                "document": documents[i] if i < len(documents) else "",
                "distance": distances[i] if i < len(distances) else None,
            }
            for i, record_id in enumerate(ids)
        ]

    @staticmethod
    def _format_get_results(raw: dict[str, Any]) -> list[dict[str, Any]]:
        ids = raw.get("ids") or []
        metadatas = raw.get("metadatas") or []
        documents = raw.get("documents") or []
        return [
            {
                "id": record_id,
                "payload": metadatas[i] if i < len(metadatas) and metadatas[i] else {},
                "document": documents[i] if i < len(documents) else "",
                "distance": None,
            }
            for i, record_id in enumerate(ids)
        ]


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    # Chroma metadata values must be str, int, float or bool
    return {key: value for key, value in payload.items() if value is not None}
