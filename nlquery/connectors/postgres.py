"""
PostgreSQL Connector

Async PostgreSQL connector using asyncpg with connection pooling.

A PostgreSQL connection is bound to one database, so list_databases()
reports only the connected database and table references are qualified
as "schema"."table".

Usage:
    connector = PostgresConnector(
        host="localhost",
        port=5432,
        database="sales",
        user="postgres",
        password="secret"
    )

    await connector.connect()
    tables = await connector.list_tables("sales", "public")
    columns = await connector.describe_table("sales", "public", "orders")
    await connector.close()
"""

import logging
import time
from typing import List, Optional

import asyncpg

from nlquery.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    ObjectNotFoundError,
    QueryError,
    QueryResult,
    SchemaError,
)

logger = logging.getLogger(__name__)

_SYSTEM_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

# SQLSTATE classes asyncpg raises for missing databases, schemas and relations
_NOT_FOUND_ERRORS = (
    asyncpg.InvalidCatalogNameError,
    asyncpg.InvalidSchemaNameError,
    asyncpg.UndefinedTableError,
)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class PostgresConnector(BaseConnector):
    """PostgreSQL source connector using asyncpg."""

    dialect = "PostgreSQL"

    async def connect(self) -> None:
        """
        Create the asyncpg connection pool.

        Raises:
            ObjectNotFoundError: If the database does not exist
            ConnectionError: If connection fails
        """
        if self._connected and self._pool:
            logger.debug("Already connected, skipping connection")
            return

        try:
            logger.info(f"Connecting to PostgreSQL at {self.host}:{self.port}/{self.database}")

            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=self.timeout,
                **self.kwargs,
            )

            async with self._pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info(f"Connected to PostgreSQL: {version.split(',')[0]}")

            self._connected = True

        except asyncpg.InvalidCatalogNameError as e:
            logger.error(f"PostgreSQL database not found: {e}")
            raise ObjectNotFoundError(f"Database {self.database} does not exist") from e
        except asyncpg.PostgresError as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e
        except OSError as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Connection error: {e}") from e

    async def execute(self, query: str, timeout: Optional[int] = None) -> QueryResult:
        """
        Execute a statement and return its rows.

        Raises:
            ObjectNotFoundError: If a referenced schema or relation is missing
            QueryError: If the statement fails or times out
            ConnectionError: If not connected
        """
        self._require_connection()

        start_time = time.perf_counter()
        query_timeout = timeout or self.timeout

        try:
            async with self._pool.acquire() as conn:
                await conn.execute(f"SET statement_timeout = {query_timeout * 1000}")
                # a prepared statement reports its columns even when no rows come back
                statement = await conn.prepare(query)
                records = await statement.fetch()
                columns = [attribute.name for attribute in statement.get_attributes()]
        except asyncpg.QueryCanceledError as e:
            logger.error(f"Query timed out after {query_timeout}s: {query[:100]}...")
            raise QueryError(f"Query timeout ({query_timeout}s)") from e
        except _NOT_FOUND_ERRORS as e:
            logger.error(f"Query referenced a missing object: {e}")
            raise ObjectNotFoundError(str(e)) from e
        except asyncpg.PostgresError as e:
            logger.error(f"Query failed: {e}\nQuery: {query[:200]}...")
            raise QueryError(f"Query execution failed: {e}") from e

        # positional, so repeated column names (self-joins) keep every value
        rows = [list(record.values()) for record in records]
        execution_time_ms = (time.perf_counter() - start_time) * 1000

        logger.debug(
            f"Query executed in {execution_time_ms:.2f}ms, returned {len(rows)} rows"
        )

        return QueryResult(
            rows=rows,
            row_count=len(rows),
            columns=columns,
            execution_time_ms=execution_time_ms,
        )

    async def list_databases(self) -> List[str]:
        self._require_connection()
        async with self._pool.acquire() as conn:
            return [await conn.fetchval("SELECT current_database()")]

    async def list_schemas(self, database: str) -> List[str]:
        self._require_connection()
        self._check_database(database)
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT schema_name
                    FROM information_schema.schemata
                    WHERE schema_name <> ALL($1::text[])
                    AND schema_name NOT LIKE 'pg_temp%'
                    ORDER BY schema_name
                    """,
                    list(_SYSTEM_SCHEMAS),
                )
        except asyncpg.PostgresError as e:
            raise SchemaError(f"Failed to list schemas: {e}") from e
        return [row["schema_name"] for row in rows]

    async def list_tables(self, database: str, schema: str) -> List[str]:
        self._require_connection()
        self._check_database(database)
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT table_name
                    FROM information_schema.tables
                    WHERE table_schema = $1
                    AND table_type IN ('BASE TABLE', 'VIEW')
                    ORDER BY table_name
                    """,
                    schema,
                )
        except asyncpg.PostgresError as e:
            raise SchemaError(f"Failed to list tables in {schema}: {e}") from e
        return [row["table_name"] for row in rows]

    async def describe_table(self, database: str, schema: str, table: str) -> List[ColumnInfo]:
        """
        Describe columns from information_schema, with primary keys and
        column comments from pg_catalog.

        Raises:
            ObjectNotFoundError: If the table has no visible columns
        """
        self._require_connection()
        self._check_database(database)
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT
                        c.column_name,
                        c.data_type,
                        c.is_nullable,
                        c.column_default,
                        col_description(
                            format('%I.%I', c.table_schema, c.table_name)::regclass,
                            c.ordinal_position
                        ) AS comment,
                        EXISTS (
                            SELECT 1
                            FROM information_schema.table_constraints tc
                            JOIN information_schema.key_column_usage kcu
                                ON tc.constraint_name = kcu.constraint_name
                                AND tc.table_schema = kcu.table_schema
                            WHERE tc.constraint_type = 'PRIMARY KEY'
                            AND tc.table_schema = c.table_schema
                            AND tc.table_name = c.table_name
                            AND kcu.column_name = c.column_name
                        ) AS is_primary_key
                    FROM information_schema.columns c
                    WHERE c.table_schema = $1 AND c.table_name = $2
                    ORDER BY c.ordinal_position
                    """,
                    schema,
                    table,
                )
        except _NOT_FOUND_ERRORS as e:
            raise ObjectNotFoundError(f"Table {schema}.{table} does not exist") from e
        except asyncpg.PostgresError as e:
            raise SchemaError(f"Failed to describe {schema}.{table}: {e}") from e

        if not rows:
            raise ObjectNotFoundError(f"Table {schema}.{table} does not exist")

        return [
            ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=row["is_nullable"] == "YES",
                default_value=row["column_default"],
                is_primary_key=bool(row["is_primary_key"]),
                comment=row["comment"],
            )
            for row in rows
        ]

    def qualify_table(self, database: str, schema: str, table: str) -> str:
        return f"{_quote(schema)}.{_quote(table)}"

    async def close(self) -> None:
        """Close the connection pool. Safe to call multiple times."""
        if not self._pool:
            logger.debug("No connection pool to close")
            return

        try:
            await self._pool.close()
        except asyncpg.PostgresError as e:
            logger.error(f"Error closing connection: {e}")
            raise ConnectionError(f"Failed to close connection: {e}") from e
        finally:
            self._pool = None
            self._connected = False
        logger.info("PostgreSQL connection closed")

    def _check_database(self, database: str) -> None:
        if database != self.database:
            raise ObjectNotFoundError(
                f"Database {database} is not reachable from a connection to {self.database}"
            )
