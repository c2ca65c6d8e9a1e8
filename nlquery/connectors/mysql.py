"""
MySQL Connector

Async-compatible MySQL connector using mysql-connector-python.

The underlying driver is synchronous, so statements and catalog lookups
run in worker threads via asyncio.to_thread. MySQL has no schema level
below a database, so list_schemas() returns the database itself and tables
are qualified as `database`.`table`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import mysql.connector
from mysql.connector import Error as MySQLError
from mysql.connector import errorcode

from nlquery.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    ConnectorError,
    ObjectNotFoundError,
    QueryError,
    QueryResult,
    SchemaError,
)

logger = logging.getLogger(__name__)

_SYSTEM_DATABASES = {"information_schema", "mysql", "performance_schema", "sys"}
_NOT_FOUND_ERRNOS = {
    errorcode.ER_BAD_DB_ERROR,
    errorcode.ER_NO_SUCH_TABLE,
    errorcode.ER_BAD_TABLE_ERROR,
}


def _quote(identifier: str) -> str:
    return "`" + identifier.replace("`", "``") + "`"


def _translate(exc: MySQLError, fallback: type[ConnectorError], message: str) -> ConnectorError:
    if getattr(exc, "errno", None) in _NOT_FOUND_ERRNOS:
        return ObjectNotFoundError(f"{message}: {exc}")
    return fallback(f"{message}: {exc}")


class MySQLConnector(BaseConnector):
    """MySQL source connector using mysql-connector-python."""

    dialect = "MySQL"

    def __init__(
        self,
        host: str,
        port: int = 3306,
        database: str = "",
        user: str = "root",
        password: str = "",
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ) -> None:
        super().__init__(
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            pool_size=pool_size,
            timeout=timeout,
            **kwargs,
        )

    async def connect(self) -> None:
        """Validate connection credentials."""
        if self._connected:
            return
        try:
            await asyncio.to_thread(self._test_connection_sync)
        except MySQLError as exc:
            logger.error(f"MySQL connection failed: {exc}")
            raise _translate(exc, ConnectionError, "Failed to connect to MySQL") from exc
        self._connected = True

    async def execute(self, query: str, timeout: int | None = None) -> QueryResult:
        """Execute SQL statement and return rows."""
        self._require_connection()

        start_time = time.perf_counter()
        query_timeout = timeout or self.timeout
        try:
            # plain cursor: positional rows keep every value of a repeated column name
            rows, columns = await asyncio.to_thread(
                self._fetch_sync, query, None, query_timeout, False
            )
        except MySQLError as exc:
            logger.error(f"MySQL query failed: {exc}\nQuery: {query[:200]}...")
            raise _translate(exc, QueryError, "Query execution failed") from exc

        return QueryResult(
            rows=[list(row) for row in rows],
            row_count=len(rows),
            columns=columns,
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
        )

    async def list_databases(self) -> list[str]:
        if self.database:
            return [self.database]
        rows = await self._catalog("SHOW DATABASES", None, "Failed to list databases")
        names = [str(next(iter(row.values()))) for row in rows]
        return [name for name in names if name.lower() not in _SYSTEM_DATABASES]

    async def list_schemas(self, database: str) -> list[str]:
        return [database]

    async def list_tables(self, database: str, schema: str) -> list[str]:
        rows = await self._catalog(
            """
            SELECT table_name AS table_name
            FROM information_schema.tables
            WHERE table_schema = %s
            ORDER BY table_name
            """,
            (database,),
            f"Failed to list tables in {database}",
        )
        return [str(row["table_name"]) for row in rows]

    async def describe_table(self, database: str, schema: str, table: str) -> list[ColumnInfo]:
        rows = await self._catalog(
            """
            SELECT
                column_name AS column_name,
                column_type AS column_type,
                is_nullable AS is_nullable,
                column_default AS column_default,
                column_key AS column_key,
                column_comment AS column_comment
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
            """,
            (database, table),
            f"Failed to describe {database}.{table}",
        )
        if not rows:
            raise ObjectNotFoundError(f"Table {database}.{table} does not exist")

        return [
            ColumnInfo(
                name=str(row["column_name"]),
                data_type=str(row["column_type"]),
                is_nullable=str(row["is_nullable"]).upper() == "YES",
                default_value=(
                    str(row["column_default"]) if row["column_default"] is not None else None
                ),
                is_primary_key=str(row["column_key"]).upper() == "PRI",
                comment=str(row["column_comment"]) if row["column_comment"] else None,
            )
            for row in rows
        ]

    def qualify_table(self, database: str, schema: str, table: str) -> str:
        return f"{_quote(database)}.{_quote(table)}"

    async def close(self) -> None:
        """Connections are opened per call, so there is nothing to release."""
        self._connected = False

    async def _catalog(
        self, query: str, params: tuple[Any, ...] | None, message: str
    ) -> list[dict[str, Any]]:
        self._require_connection()
        try:
            rows, _ = await asyncio.to_thread(self._fetch_sync, query, params, self.timeout)
        except MySQLError as exc:
            logger.error(f"{message}: {exc}")
            raise _translate(exc, SchemaError, message) from exc
        return rows

    def _connection_kwargs(self, query_timeout: int | None = None) -> dict[str, Any]:
        kwargs = {
            "host": self.host,
            "port": self.port,
            "database": self.database or None,
            "user": self.user,
            "password": self.password,
            "autocommit": True,
            "connection_timeout": query_timeout or self.timeout,
        }
        kwargs.update(self.kwargs)
        return kwargs

    def _test_connection_sync(self) -> None:
        conn = mysql.connector.connect(**self._connection_kwargs())
        try:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT VERSION()")
                cursor.fetchone()
            finally:
                cursor.close()
        finally:
            conn.close()

    def _fetch_sync(
        self,
        query: str,
        params: tuple[Any, ...] | None,
        query_timeout: int,
        dictionary: bool = True,
    ) -> tuple[list[Any], list[str]]:
        conn = mysql.connector.connect(**self._connection_kwargs(query_timeout))
        cursor = conn.cursor(dictionary=dictionary)
        try:
            cursor.execute(query, params)
            if not cursor.with_rows:
                return [], []
            rows = cursor.fetchall()
            columns = [col[0] for col in cursor.description]
            return rows, columns
        finally:
            cursor.close()
            conn.close()
