"""Unit tests for MySQLConnector with a mocked mysql-connector driver."""

from unittest.mock import MagicMock, patch

import pytest
from mysql.connector import Error as MySQLError
from mysql.connector import errorcode

from nlquery.connectors.base import (
    ConnectionError,
    ObjectNotFoundError,
    QueryError,
    SchemaError,
)
from nlquery.connectors.mysql import MySQLConnector


@pytest.fixture
def mock_connection():
    conn = MagicMock()
    cursor = MagicMock()
    cursor.with_rows = True
    cursor.fetchall.return_value = []
    cursor.description = []
    conn.cursor.return_value = cursor
    return conn, cursor


@pytest.fixture
async def connected(mock_connection):
    conn, cursor = mock_connection
    with patch("mysql.connector.connect", return_value=conn):
        connector = MySQLConnector(host="shop-db", database="shop", user="root", password="pw")
        await connector.connect()
    return connector


class TestMySQLConnector:
    """Test suite for MySQLConnector."""

    def test_defaults(self):
        connector = MySQLConnector(host="shop-db")

        assert connector.port == 3306
        assert connector.user == "root"
        assert connector.dialect == "MySQL"

    def test_qualify_table(self):
        connector = MySQLConnector(host="shop-db", database="shop")

        assert connector.qualify_table("shop", "shop", "orders") == "`shop`.`orders`"

    @pytest.mark.asyncio
    async def test_connect(self, mock_connection):
        conn, cursor = mock_connection

        with patch("mysql.connector.connect", return_value=conn) as connect:
            connector = MySQLConnector(host="shop-db", database="shop", timeout=12)
            await connector.connect()

        assert connector.is_connected
        cursor.execute.assert_called_once_with("SELECT VERSION()")
        assert connect.call_args.kwargs["connection_timeout"] == 12
        assert connect.call_args.kwargs["autocommit"] is True
        conn.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_unknown_database(self):
        error = MySQLError(msg="Unknown database 'shop'", errno=errorcode.ER_BAD_DB_ERROR)

        with patch("mysql.connector.connect", side_effect=error):
            with pytest.raises(ObjectNotFoundError):
                await MySQLConnector(host="shop-db", database="shop").connect()

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        error = MySQLError(msg="Can't connect to MySQL server", errno=2003)

        with patch("mysql.connector.connect", side_effect=error):
            with pytest.raises(ConnectionError):
                await MySQLConnector(host="shop-db", database="shop").connect()

    @pytest.mark.asyncio
    async def test_execute(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchall.return_value = [("EMEA", 200.5)]
        cursor.description = [("region",), ("revenue",)]

        with patch("mysql.connector.connect", return_value=conn):
            result = await connected.execute("SELECT region, revenue FROM totals")

        assert result.columns == ["region", "revenue"]
        assert result.rows == [["EMEA", 200.5]]
        assert result.row_count == 1
        conn.cursor.assert_called_with(dictionary=False)

    @pytest.mark.asyncio
    async def test_execute_repeated_column_names(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchall.return_value = [(1, 2)]
        cursor.description = [("id",), ("id",)]

        with patch("mysql.connector.connect", return_value=conn):
            result = await connected.execute("SELECT 1 AS id, 2 AS id")

        assert result.columns == ["id", "id"]
        assert result.rows == [[1, 2]]

    @pytest.mark.asyncio
    async def test_execute_empty_result_keeps_columns(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.description = [("id",), ("amount",)]

        with patch("mysql.connector.connect", return_value=conn):
            result = await connected.execute("SELECT id, amount FROM orders WHERE false")

        assert result.rows == []
        assert result.columns == ["id", "amount"]

    @pytest.mark.asyncio
    async def test_statement_without_rows(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.with_rows = False

        with patch("mysql.connector.connect", return_value=conn):
            result = await connected.execute("SET @x = 1")

        assert result.rows == []
        assert result.columns == []

    @pytest.mark.asyncio
    async def test_missing_table_is_not_found(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.execute.side_effect = MySQLError(
            msg="Table 'shop.orderz' doesn't exist", errno=errorcode.ER_NO_SUCH_TABLE
        )

        with patch("mysql.connector.connect", return_value=conn):
            with pytest.raises(ObjectNotFoundError):
                await connected.execute("SELECT * FROM orderz")

    @pytest.mark.asyncio
    async def test_syntax_error_is_query_error(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.execute.side_effect = MySQLError(msg="You have an error in your SQL syntax", errno=1064)

        with patch("mysql.connector.connect", return_value=conn):
            with pytest.raises(QueryError, match="Query execution failed"):
                await connected.execute("SELECT * FORM orders")

    @pytest.mark.asyncio
    async def test_list_databases_uses_configured_database(self, connected):
        assert await connected.list_databases() == ["shop"]
        assert await connected.list_schemas("shop") == ["shop"]

    @pytest.mark.asyncio
    async def test_list_databases_hides_system_databases(self, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchall.return_value = [
            {"Database": "information_schema"},
            {"Database": "shop"},
            {"Database": "sys"},
        ]
        cursor.description = [("Database",)]

        with patch("mysql.connector.connect", return_value=conn):
            connector = MySQLConnector(host="shop-db")
            await connector.connect()
            databases = await connector.list_databases()

        assert databases == ["shop"]

    @pytest.mark.asyncio
    async def test_describe_table(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchall.return_value = [
            {
                "column_name": "id",
                "column_type": "int",
                "is_nullable": "NO",
                "column_default": None,
                "column_key": "PRI",
                "column_comment": "",
            },
            {
                "column_name": "amount",
                "column_type": "decimal(10,2)",
                "is_nullable": "YES",
                "column_default": "0.00",
                "column_key": "",
                "column_comment": "Order total",
            },
        ]

        with patch("mysql.connector.connect", return_value=conn):
            columns = await connected.describe_table("shop", "shop", "orders")

        assert columns[0].is_primary_key is True
        assert columns[0].comment is None
        assert columns[1].data_type == "decimal(10,2)"
        conn.cursor.assert_called_with(dictionary=True)
        assert columns[1].default_value == "0.00"
        assert columns[1].comment == "Order total"
        assert cursor.execute.call_args.args[1] == ("shop", "orders")

    @pytest.mark.asyncio
    async def test_describe_missing_table(self, connected, mock_connection):
        conn, _ = mock_connection

        with patch("mysql.connector.connect", return_value=conn):
            with pytest.raises(ObjectNotFoundError):
                await connected.describe_table("shop", "shop", "missing")

    @pytest.mark.asyncio
    async def test_catalog_failure_is_schema_error(self, connected, mock_connection):
        conn, cursor = mock_connection
        cursor.execute.side_effect = MySQLError(msg="Access denied", errno=1142)

        with patch("mysql.connector.connect", return_value=conn):
            with pytest.raises(SchemaError):
                await connected.list_tables("shop", "shop")

    @pytest.mark.asyncio
    async def test_close(self, connected):
        await connected.close()

        assert connected.is_connected is False
