"""
Connection registry.

Holds one live connector per data source. Connectors are created lazily on
first use and reused afterwards; concurrent first uses of the same data
source share a single connect attempt. A failed connect leaves no entry
behind, so the next call reconnects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from nlquery.config import Settings
from nlquery.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectorError,
    ObjectNotFoundError,
    QueryResult,
)
from nlquery.connectors.factory import create_connector, dialect_for
from nlquery.models.datasource import DataSource, load_data_sources

logger = logging.getLogger(__name__)

ConnectorBuilder = Callable[[DataSource], BaseConnector]


class ConnectionRegistry:
    """Map of data source id to a live connector."""

    def __init__(
        self,
        data_sources: Iterable[DataSource] | None = None,
        connector_builder: ConnectorBuilder | None = None,
        pool_size: int = 5,
        timeout: int = 30,
    ) -> None:
        self._data_sources: dict[str, DataSource] = {}
        self._connectors: dict[str, BaseConnector] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._pool_size = pool_size
        self._timeout = timeout
        self._connector_builder = connector_builder or self._build_connector

        for data_source in data_sources or []:
            self.register(data_source)

    @classmethod
    def from_settings(cls, settings: Settings) -> ConnectionRegistry:
        """Registry over the data sources declared in the configured YAML file."""
        config = settings.data_sources
        data_sources = load_data_sources(config.config_path)
        logger.info(f"Loaded {len(data_sources)} data sources from {config.config_path}")
        return cls(data_sources, pool_size=config.pool_size, timeout=config.timeout)

    def register(self, data_source: DataSource) -> None:
        """Add or replace a data source declaration."""
        self._data_sources[data_source.id] = data_source
        logger.debug(f"Registered data source {data_source.id}")

    def get_data_source(self, data_source_id: str) -> DataSource:
        """
        Raises:
            ObjectNotFoundError: If the id was never registered
        """
        data_source = self._data_sources.get(data_source_id)
        if data_source is None:
            raise ObjectNotFoundError(f"Data source {data_source_id} not found")
        return data_source

    def list_data_sources(self) -> list[DataSource]:
        return list(self._data_sources.values())

    async def get_connector(self, data_source_id: str) -> BaseConnector:
        """Return the cached connector for a data source, connecting on miss."""
        connector = self._connectors.get(data_source_id)
        if connector is not None and connector.is_connected:
            return connector

        data_source = self.get_data_source(data_source_id)
        lock = self._locks.setdefault(data_source_id, asyncio.Lock())
        async with lock:
            connector = self._connectors.get(data_source_id)
            if connector is not None and connector.is_connected:
                return connector

            connector = self._connector_builder(data_source)
            await connector.connect()
            self._connectors[data_source_id] = connector
            logger.info(
                f"Connected data source {data_source_id}",
                extra={"data_source_id": data_source_id, "connector": type(connector).__name__},
            )
            return connector

    def dialect(self, data_source_id: str) -> str:
        """Dialect from the declaration; does not open a connection."""
        data_source = self.get_data_source(data_source_id)
        return dialect_for(data_source.database_type, data_source.database_url.get_secret_value())

    async def execute_query(self, data_source_id: str, sql: str) -> QueryResult:
        connector = await self.get_connector(data_source_id)
        return await connector.execute(sql)

    async def list_databases(self, data_source_id: str) -> list[str]:
        connector = await self.get_connector(data_source_id)
        return await connector.list_databases()

    async def list_schemas(self, data_source_id: str, database: str) -> list[str]:
        connector = await self.get_connector(data_source_id)
        return await connector.list_schemas(database)

    async def list_tables(self, data_source_id: str, database: str, schema: str) -> list[str]:
        connector = await self.get_connector(data_source_id)
        return await connector.list_tables(database, schema)

    async def describe_table(
        self, data_source_id: str, database: str, schema: str, table: str
    ) -> list[ColumnInfo]:
        connector = await self.get_connector(data_source_id)
        return await connector.describe_table(database, schema, table)

    async def sample_rows(
        self, data_source_id: str, database: str, schema: str, table: str, limit: int
    ) -> QueryResult:
        connector = await self.get_connector(data_source_id)
        return await connector.sample_rows(database, schema, table, limit)

    async def count_rows(self, data_source_id: str, database: str, schema: str, table: str) -> int:
        connector = await self.get_connector(data_source_id)
        return await connector.count_rows(database, schema, table)

    async def close(self, data_source_id: str) -> None:
        """Close and forget the connector of one data source."""
        connector = self._connectors.pop(data_source_id, None)
        if connector is None:
            return
        try:
            await connector.close()
        except ConnectorError as e:
            logger.warning(f"Error closing connector for {data_source_id}: {e}")

    async def close_all(self) -> None:
        for data_source_id in list(self._connectors):
            await self.close(data_source_id)

    def _build_connector(self, data_source: DataSource) -> BaseConnector:
        return create_connector(
            database_url=data_source.database_url.get_secret_value(),
            database_type=data_source.database_type,
            pool_size=self._pool_size,
            timeout=self._timeout,
        )
