"""
Source Connectors

Async connectors for the warehouses questions are answered against, and
the registry that keeps one live connector per data source.

Available Connectors:
    - PostgresConnector: PostgreSQL via asyncpg
    - MySQLConnector: MySQL via mysql-connector-python

Usage:
    from nlquery.connectors import ConnectionRegistry
    from nlquery.models.datasource import load_data_sources

    registry = ConnectionRegistry(load_data_sources("config/data_sources.yaml"))
    result = await registry.execute_query("sales", "SELECT 1")
    await registry.close_all()
"""

from nlquery.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    ConnectorError,
    ConnectorErrorKind,
    ObjectNotFoundError,
    QueryError,
    QueryResult,
    SchemaError,
)
from nlquery.connectors.factory import create_connector
from nlquery.connectors.mysql import MySQLConnector
from nlquery.connectors.postgres import PostgresConnector
from nlquery.connectors.registry import ConnectionRegistry

__all__ = [
    "BaseConnector",
    "ColumnInfo",
    "QueryResult",
    "ConnectorError",
    "ConnectorErrorKind",
    "ConnectionError",
    "QueryError",
    "SchemaError",
    "ObjectNotFoundError",
    "create_connector",
    "PostgresConnector",
    "MySQLConnector",
    "ConnectionRegistry",
]
