"""
SchemaResolverAgent

Builds the schema context used to ground SQL generation.

Two tiers:
    1. Knowledge: table and column records from the data source's
       knowledge collection. Never touches the live source.
    2. Introspection: live enumeration of databases, schemas and tables
       through the connection registry, with a describe, a small sample
       and a row count per table.

The introspection tier runs when an existing collection yields no tables
or when knowledge use is switched off. A missing collection resolves to no
tables without touching the source; run `nlquery index` to build one.
Resolution never raises: failures are logged and degrade to fewer (or no)
tables.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from nlquery.agents.base import BaseAgent
from nlquery.config import Settings, get_settings
from nlquery.connectors.registry import ConnectionRegistry
from nlquery.knowledge.vectors import SOURCE_TYPE_COLUMN, SOURCE_TYPE_TABLE, KnowledgeStore
from nlquery.models.agent import SchemaResolverInput, SchemaResolverOutput
from nlquery.models.query import ColumnMetadata, SchemaMetadata, table_key

logger = logging.getLogger(__name__)

TableRef = tuple[str, str, str]

# sorts after every indexed ordinal
_NO_ORDINAL = 1 << 31


class SchemaResolverAgent(BaseAgent):
    """
    Resolve schema metadata for a data source.

    Usage:
        resolver = SchemaResolverAgent(knowledge_store=store, connectors=registry)
        schemas = await resolver.resolve("sales", filter_tables=["SALES.PUBLIC.ORDERS"])
    """

    def __init__(
        self,
        knowledge_store: KnowledgeStore | None = None,
        connectors: ConnectionRegistry | None = None,
        settings: Settings | None = None,
    ):
        super().__init__(name="SchemaResolverAgent")
        self.knowledge_store = knowledge_store
        self.connectors = connectors
        self.settings = settings or get_settings()

    async def execute(self, input: SchemaResolverInput) -> SchemaResolverOutput:
        schemas, tier = await self.resolve_with_tier(
            input.data_source_id, input.filter_tables, input.use_knowledge
        )
        return SchemaResolverOutput(
            success=True,
            schemas=schemas,
            tier=tier,
            data={"table_count": len(schemas), "tier": tier},
            metadata=self._create_metadata(),
        )

    async def resolve(
        self,
        data_source_id: str,
        filter_tables: Iterable[str] | None = None,
        use_knowledge: bool = True,
    ) -> list[SchemaMetadata]:
        """Schema metadata for the data source, possibly empty."""
        schemas, _ = await self.resolve_with_tier(data_source_id, filter_tables, use_knowledge)
        return schemas

    async def resolve_with_tier(
        self,
        data_source_id: str,
        filter_tables: Iterable[str] | None = None,
        use_knowledge: bool = True,
    ) -> tuple[list[SchemaMetadata], str]:
        """Schema metadata plus the tier that produced it (knowledge, introspection or none)."""
        allowed = set(filter_tables) if filter_tables else None
        try:
            if use_knowledge and self.knowledge_store is not None:
                schemas = await self.resolve_from_knowledge(data_source_id, allowed)
                if schemas is None:
                    # No collection: nothing is known about this source yet
                    return [], "none"
                if schemas:
                    return schemas, "knowledge"
                logger.info(
                    f"No knowledge tables for {data_source_id}, falling back to introspection",
                    extra={"data_source_id": data_source_id},
                )

            if self.connectors is None:
                return [], "none"

            schemas = await self.resolve_from_introspection(data_source_id, allowed)
            return schemas, "introspection" if schemas else "none"

        except Exception as e:
            logger.error(
                f"Schema resolution failed for {data_source_id}: {e}",
                extra={"data_source_id": data_source_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            return [], "none"

    # ------------------------------------------------------------------
    # Knowledge tier
    # ------------------------------------------------------------------

    async def resolve_from_knowledge(
        self, data_source_id: str, allowed: set[str] | None = None
    ) -> list[SchemaMetadata] | None:
        """
        Read table and column records from the knowledge collection.

        Returns None when the collection does not exist, and an empty list
        when it exists but holds no usable tables.
        """
        store = self.knowledge_store
        collection_name = store.collection_name_for(data_source_id)

        if not await store.collection_exists(collection_name):
            logger.warning(f"No knowledge collection found for data source {data_source_id}")
            return None

        knowledge = self.settings.knowledge
        table_records = await store.search(
            collection_name,
            filters={"source": store.source_tag, "sourceType": SOURCE_TYPE_TABLE},
            limit=knowledge.max_tables,
        )

        tables: dict[str, dict[str, Any]] = {}
        for record in table_records:
            payload = record.get("payload") or {}
            ref = _payload_ref(payload)
            if ref is None:
                continue
            key = table_key(*ref)
            if key in tables or (allowed is not None and key not in allowed):
                continue
            tables[key] = payload

        semaphore = asyncio.Semaphore(self.settings.pipeline.introspection_concurrency)

        async def load(payload: dict[str, Any]) -> SchemaMetadata | None:
            async with semaphore:
                return await self._table_from_knowledge(collection_name, payload)

        results = await asyncio.gather(*(load(payload) for payload in tables.values()))
        schemas = [schema for schema in results if schema is not None]

        logger.info(
            f"Resolved {len(schemas)} tables from knowledge for {data_source_id}",
            extra={"data_source_id": data_source_id, "collection": collection_name},
        )
        return schemas

    async def _table_from_knowledge(
        self, collection_name: str, payload: dict[str, Any]
    ) -> SchemaMetadata | None:
        database, schema, table = _payload_ref(payload)
        column_records = await self.knowledge_store.search(
            collection_name,
            filters={
                "sourceType": SOURCE_TYPE_COLUMN,
                "database": database,
                "schema": schema,
                "table": table,
            },
            limit=self.settings.knowledge.max_columns_per_table,
        )

        # table order, not Chroma order
        column_records = sorted(
            column_records,
            key=lambda record: (record.get("payload") or {}).get("ordinal", _NO_ORDINAL),
        )

        columns = []
        for record in column_records:
            column = record.get("payload") or {}
            if not column.get("column"):
                continue
            columns.append(
                ColumnMetadata(
                    name=column["column"],
                    type=column.get("dataType") or "string",
                    description=column.get("description"),
                )
            )

        if not columns:
            logger.warning(f"Skipping {table_key(database, schema, table)}: no indexed columns")
            return None

        row_count = payload.get("rowCount")
        return SchemaMetadata(
            database=database,
            schema=schema,
            table=table,
            description=payload.get("description"),
            row_count=int(row_count) if row_count is not None else None,
            columns=columns,
        )

    # ------------------------------------------------------------------
    # Introspection tier
    # ------------------------------------------------------------------

    async def resolve_from_introspection(
        self, data_source_id: str, allowed: set[str] | None = None
    ) -> list[SchemaMetadata]:
        """Enumerate and describe tables through the live connector."""
        candidates = await self._enumerate_tables(data_source_id)
        if allowed is not None:
            candidates = [ref for ref in candidates if table_key(*ref) in allowed]

        semaphore = asyncio.Semaphore(self.settings.pipeline.introspection_concurrency)

        async def load(ref: TableRef) -> SchemaMetadata | None:
            async with semaphore:
                return await self._introspect_table(data_source_id, ref)

        results = await asyncio.gather(*(load(ref) for ref in candidates))
        schemas = [schema for schema in results if schema is not None]

        logger.info(
            f"Introspected {len(schemas)} of {len(candidates)} tables for {data_source_id}",
            extra={"data_source_id": data_source_id},
        )
        return schemas

    async def _enumerate_tables(self, data_source_id: str) -> list[TableRef]:
        refs: list[TableRef] = []
        seen: set[str] = set()

        for database in await self.connectors.list_databases(data_source_id):
            try:
                schemas = await self.connectors.list_schemas(data_source_id, database)
            except Exception as e:
                logger.warning(f"Skipping database {database}: {e}")
                continue

            for schema in schemas:
                try:
                    tables = await self.connectors.list_tables(data_source_id, database, schema)
                except Exception as e:
                    logger.warning(f"Skipping schema {database}.{schema}: {e}")
                    continue

                for table in tables:
                    key = table_key(database, schema, table)
                    if key not in seen:
                        seen.add(key)
                        refs.append((database, schema, table))
        return refs

    async def _introspect_table(self, data_source_id: str, ref: TableRef) -> SchemaMetadata | None:
        database, schema, table = ref
        try:
            column_infos = await self.connectors.describe_table(data_source_id, database, schema, table)
            sample = await self.connectors.sample_rows(
                data_source_id, database, schema, table, self.settings.pipeline.sample_rows_limit
            )
            row_count = await self.connectors.count_rows(data_source_id, database, schema, table)
        except Exception as e:
            logger.warning(
                f"Skipping table {table_key(*ref)}: {e}",
                extra={"data_source_id": data_source_id, "error_type": type(e).__name__},
            )
            return None

        if not column_infos:
            return None

        return SchemaMetadata(
            database=database,
            schema=schema,
            table=table,
            row_count=row_count,
            sample_rows=sample.rows,
            columns=[
                ColumnMetadata(name=info.name, type=info.data_type, description=info.comment)
                for info in column_infos
            ],
        )


def _payload_ref(payload: dict[str, Any]) -> TableRef | None:
    database, schema, table = payload.get("database"), payload.get("schema"), payload.get("table")
    if not (database and schema and table):
        return None
    return str(database), str(schema), str(table)
