"""
ExecutorAgent: runs generated SQL against a data source.

Delegates to the ConnectionRegistry and normalizes the connector's
positional rows into a TabularResult whose rows follow column order.
"""

import logging

from nlquery.agents.base import BaseAgent
from nlquery.connectors.base import ConnectorError, ConnectorErrorKind
from nlquery.connectors.registry import ConnectionRegistry
from nlquery.models.agent import (
    ExecutorAgentInput,
    ExecutorAgentOutput,
    InvalidInputError,
    NotFoundError,
    QueryExecutionError,
)
from nlquery.models.query import TabularResult

logger = logging.getLogger(__name__)


class ExecutorAgent(BaseAgent):
    """
    Query execution agent.

    Usage:
        executor = ExecutorAgent(connectors=registry)
        result = await executor.execute_sql("sales", "SELECT COUNT(*) FROM orders")
    """

    def __init__(self, connectors: ConnectionRegistry):
        super().__init__(name="ExecutorAgent")
        self.connectors = connectors

    async def execute(self, input: ExecutorAgentInput) -> ExecutorAgentOutput:
        result = await self.execute_sql(input.data_source_id, input.sql)
        return ExecutorAgentOutput(
            success=True,
            result=result,
            data={"row_count": result.row_count},
            metadata=self._create_metadata(),
        )

    async def execute_sql(self, data_source_id: str, sql: str) -> TabularResult:
        """
        Execute a statement and normalize its result.

        Raises:
            InvalidInputError: If the statement is empty (no connector call is made)
            NotFoundError: If the data source or a referenced object does not exist
            QueryExecutionError: On any other connector failure
        """
        if not sql or not sql.strip():
            raise InvalidInputError(agent=self.name, message="SQL query must not be empty")

        try:
            native = await self.connectors.execute_query(data_source_id, sql)
        except ConnectorError as e:
            context = {"data_source_id": data_source_id, "connector_error": str(e.kind)}
            if e.kind == ConnectorErrorKind.NOT_FOUND:
                raise NotFoundError(agent=self.name, message=e.message, context=context) from e
            logger.error(f"[{self.name}] Query failed on {data_source_id}: {e.message}")
            raise QueryExecutionError(
                agent=self.name,
                message=f"Query execution failed: {e.message}",
                context={**context, "sql": sql},
            ) from e

        result = TabularResult(
            columns=list(native.columns),
            rows=[list(row) for row in native.rows],
            row_count=native.row_count,
            metadata={
                "data_source_id": data_source_id,
                "execution_time_ms": native.execution_time_ms,
            },
        )

        logger.info(
            f"[{self.name}] Query returned {result.row_count} rows",
            extra={"data_source_id": data_source_id, "execution_time_ms": native.execution_time_ms},
        )
        return result
