"""
Base Source Connector

Abstract base class for the warehouse connectors the pipeline queries and
introspects. Provides a consistent async interface for connecting,
executing statements, and enumerating databases, schemas, tables and
columns.

All connectors must implement:
- connect(): Establish connection (idempotent)
- execute(): Run a statement and return rows as value lists in column order
- list_databases() / list_schemas() / list_tables(): Enumerate structure
- describe_table(): Column descriptors for one table
- qualify_table(): Dialect-correct fully qualified table reference
- close(): Release connections
"""

import logging
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ============================================================================
# Data Models
# ============================================================================


class ColumnInfo(BaseModel):
    """Column descriptor returned by describe_table()."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")
    is_nullable: bool = Field(default=True, description="Whether column can be NULL")
    default_value: str | None = Field(None, description="Default value if any")
    is_primary_key: bool = Field(default=False, description="Is part of primary key")
    comment: str | None = Field(None, description="Column comment from the catalog")


class QueryResult(BaseModel):
    """Native result of a statement executed by a connector."""

    rows: list[list[Any]] = Field(..., description="Result rows, values in `columns` order")
    row_count: int = Field(..., description="Number of rows returned")
    columns: list[str] = Field(..., description="Column names in select order, possibly repeated")
    execution_time_ms: float = Field(..., description="Execution time in ms")


# ============================================================================
# Errors
# ============================================================================


class ConnectorErrorKind(StrEnum):
    """Explicit failure category carried by every connector error."""

    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    CONNECTION = "connection"
    QUERY = "query"
    SCHEMA = "schema"


class ConnectorError(Exception):
    """Base exception for connector errors."""

    default_kind = ConnectorErrorKind.QUERY

    def __init__(self, message: str, kind: ConnectorErrorKind | None = None):
        self.message = message
        self.kind = kind or self.default_kind
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.kind == ConnectorErrorKind.NOT_FOUND


class ConnectionError(ConnectorError):
    """Error establishing or managing a connection."""

    default_kind = ConnectorErrorKind.CONNECTION


class QueryError(ConnectorError):
    """Error executing a statement."""

    default_kind = ConnectorErrorKind.QUERY


class SchemaError(ConnectorError):
    """Error introspecting structure."""

    default_kind = ConnectorErrorKind.SCHEMA


class ObjectNotFoundError(ConnectorError):
    """Data source, database, schema or table does not exist."""

    default_kind = ConnectorErrorKind.NOT_FOUND


# ============================================================================
# Base Connector
# ============================================================================


class BaseConnector(ABC):
    """
    Abstract base class for source connectors.

    Usage:
        connector = PostgresConnector(host="localhost", port=5432, ...)
        await connector.connect()

        for database in await connector.list_databases():
            for schema in await connector.list_schemas(database):
                tables = await connector.list_tables(database, schema)

        result = await connector.execute("SELECT 1 AS one")
        await connector.close()
    """

    dialect = "SQL"

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ):
        """
        Initialize connector.

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password
            pool_size: Connection pool size
            timeout: Statement timeout in seconds
            **kwargs: Additional driver-specific parameters
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.pool_size = pool_size
        self.timeout = timeout
        self.kwargs = kwargs

        self._pool = None
        self._connected = False

        logger.info(f"Initialized {self.__class__.__name__} for {user}@{host}:{port}/{database}")

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the connection. Calling it again is a no-op.

        Raises:
            ConnectionError: If connection fails
            ObjectNotFoundError: If the configured database does not exist
        """

    @abstractmethod
    async def execute(self, query: str, timeout: int | None = None) -> QueryResult:
        """
        Execute a statement.

        Raises:
            QueryError: If execution fails
            ObjectNotFoundError: If a referenced object does not exist
            ConnectionError: If not connected
        """

    @abstractmethod
    async def list_databases(self) -> list[str]:
        """Databases visible to this connection."""

    @abstractmethod
    async def list_schemas(self, database: str) -> list[str]:
        """Schemas inside a database."""

    @abstractmethod
    async def list_tables(self, database: str, schema: str) -> list[str]:
        """Tables and views inside a schema."""

    @abstractmethod
    async def describe_table(self, database: str, schema: str, table: str) -> list[ColumnInfo]:
        """
        Column descriptors for one table, in ordinal order.

        Raises:
            ObjectNotFoundError: If the table does not exist
        """

    @abstractmethod
    def qualify_table(self, database: str, schema: str, table: str) -> str:
        """Quoted table reference usable in a FROM clause."""

    @abstractmethod
    async def close(self) -> None:
        """Close connections. Safe to call multiple times."""

    async def sample_rows(self, database: str, schema: str, table: str, limit: int) -> QueryResult:
        """First `limit` rows of a table."""
        return await self.execute(
            f"SELECT * FROM {self.qualify_table(database, schema, table)} LIMIT {int(limit)}"
        )

    async def count_rows(self, database: str, schema: str, table: str) -> int:
        """Exact row count of a table."""
        result = await self.execute(
            f"SELECT COUNT(*) AS row_count FROM {self.qualify_table(database, schema, table)}"
        )
        rows = result.rows
        return int(rows[0][0]) if rows and rows[0] and rows[0][0] is not None else 0

    def _require_connection(self) -> None:
        if not self._connected:
            raise ConnectionError("Not connected to database. Call connect() first.")

    @property
    def is_connected(self) -> bool:
        """Check if connector is connected."""
        return self._connected

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"<{self.__class__.__name__} {self.user}@{self.host}:{self.port}/{self.database} ({status})>"
