"""Connector factory for supported database URLs."""

from __future__ import annotations

from urllib.parse import unquote, urlparse

from nlquery.connectors.base import BaseConnector, ConnectorErrorKind, ConnectorError
from nlquery.connectors.mysql import MySQLConnector
from nlquery.connectors.postgres import PostgresConnector

_POSTGRES_SCHEMES = {"postgres", "postgresql"}
_MYSQL_SCHEMES = {"mysql"}


def infer_database_type(database_url: str) -> str:
    """Infer logical database type from connection URL scheme."""
    parsed = _parse_url(database_url)
    scheme = parsed.scheme.split("+")[0].lower()
    if scheme in _POSTGRES_SCHEMES:
        return "postgresql"
    if scheme in _MYSQL_SCHEMES:
        return "mysql"
    raise ConnectorError(
        f"Unsupported database URL scheme: {parsed.scheme}",
        kind=ConnectorErrorKind.INVALID_INPUT,
    )


def resolve_database_type(database_type: str | None, database_url: str) -> str:
    """Resolve target database type from explicit type or URL."""
    if database_type:
        value = database_type.strip().lower()
        if value in {"postgres", "postgresql"}:
            return "postgresql"
        if value == "mysql":
            return "mysql"
        raise ConnectorError(
            f"Unsupported database type: {database_type}",
            kind=ConnectorErrorKind.INVALID_INPUT,
        )
    return infer_database_type(database_url)


def dialect_for(database_type: str | None, database_url: str) -> str:
    """SQL dialect name for a declared data source, without connecting."""
    if resolve_database_type(database_type, database_url) == "mysql":
        return MySQLConnector.dialect
    return PostgresConnector.dialect


def create_connector(
    *,
    database_url: str,
    database_type: str | None = None,
    pool_size: int = 5,
    timeout: int = 30,
    **kwargs,
) -> BaseConnector:
    """
    Create a typed connector instance from URL + optional database_type.

    Raises:
        ConnectorError: With kind INVALID_INPUT when the URL lacks a host
            or names an unsupported engine
    """
    parsed = _parse_url(database_url)
    if not parsed.hostname:
        raise ConnectorError(
            "Invalid database URL: host is required.",
            kind=ConnectorErrorKind.INVALID_INPUT,
        )

    target_type = resolve_database_type(database_type, database_url)
    db_name = parsed.path.lstrip("/")
    password = unquote(parsed.password) if parsed.password else ""

    if target_type == "postgresql":
        return PostgresConnector(
            host=parsed.hostname,
            port=parsed.port or 5432,
            database=db_name or "postgres",
            user=parsed.username or "postgres",
            password=password,
            pool_size=pool_size,
            timeout=timeout,
            **kwargs,
        )

    return MySQLConnector(
        host=parsed.hostname,
        port=parsed.port or 3306,
        database=db_name or "",
        user=parsed.username or "root",
        password=password,
        pool_size=pool_size,
        timeout=timeout,
        **kwargs,
    )


def _parse_url(database_url: str):
    normalized = database_url.replace("postgresql+asyncpg://", "postgresql://")
    return urlparse(normalized)
