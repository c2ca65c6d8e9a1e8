"""
Unit tests for SQLAgent.

Tests the SQL generation agent that turns a question plus resolved schema
metadata into a single statement.
"""

from unittest.mock import patch

import pytest

from nlquery.agents.sql import (
    NO_DESCRIPTION,
    SQLAgent,
    build_schema_context,
    clean_sql,
    format_table,
)
from nlquery.models.agent import InvalidInputError, LLMError, SQLAgentInput
from nlquery.models.query import ColumnMetadata, NLQueryOptions, SchemaMetadata


@pytest.fixture
def sql_agent(mock_llm_provider, settings):
    """SQLAgent with mock LLM provider."""
    return SQLAgent(llm_provider=mock_llm_provider, settings=settings)


class TestSchemaContext:
    """Test rendering of schema metadata into the prompt."""

    def test_format_table(self, orders_schema):
        block = format_table(orders_schema)

        assert block.splitlines() == [
            "Table: SALES.PUBLIC.ORDERS",
            "Description: Customer orders",
            "Columns:",
            "  id (NUMBER): Order identifier",
            "  amount (NUMBER): Order total",
            "  created_at (TIMESTAMP)",
            "Row count: ~3",
        ]

    def test_missing_description_and_row_count(self):
        schema = SchemaMetadata(
            database="DB", schema="S", table="T", columns=[ColumnMetadata(name="x")]
        )

        block = format_table(schema)

        assert f"Description: {NO_DESCRIPTION}" in block
        assert "  x (string)" in block
        assert "Row count" not in block

    def test_blocks_are_separated(self, orders_schema):
        other = orders_schema.model_copy(update={"table": "REFUNDS"})

        context = build_schema_context([orders_schema, other])

        assert context.count("Table: ") == 2
        assert "\n\nTable: SALES.PUBLIC.REFUNDS" in context

    def test_empty_context(self):
        assert build_schema_context([]) == "No schema information available."


class TestCleanSQL:
    """Test output cleanup."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("  SELECT 1  \n", "SELECT 1"),
            ("```sql\nSELECT * FROM orders\n```", "SELECT * FROM orders"),
            ("```\nSELECT 2\n```", "SELECT 2"),
            ("SELECT '```' AS fence", "SELECT '```' AS fence"),
        ],
    )
    def test_clean_sql(self, raw, expected):
        assert clean_sql(raw) == expected


class TestGeneration:
    """Test SQL generation."""

    @pytest.mark.asyncio
    async def test_generate_returns_trimmed_sql(self, sql_agent, mock_llm_provider, orders_schema):
        mock_llm_provider.set_response(
            "\n  SELECT SUM(amount) FROM SALES.PUBLIC.ORDERS  \n"
        )

        sql = await sql_agent.generate(
            "What was total revenue last month?", [orders_schema], dialect="PostgreSQL"
        )

        assert sql == "SELECT SUM(amount) FROM SALES.PUBLIC.ORDERS"

    @pytest.mark.asyncio
    async def test_prompt_contents(self, sql_agent, mock_llm_provider, orders_schema):
        await sql_agent.generate(
            "What was total revenue last month?", [orders_schema], dialect="PostgreSQL"
        )

        request = mock_llm_provider.last_request
        assert request.messages[0].role == "system"
        assert "SQL expert" in request.messages[0].content

        prompt = mock_llm_provider.last_prompt
        assert "SALES.PUBLIC.ORDERS" in prompt
        assert "amount (NUMBER): Order total" in prompt
        assert "PostgreSQL" in prompt
        assert "What was total revenue last month?" in prompt

    @pytest.mark.asyncio
    async def test_settings_defaults(self, sql_agent, mock_llm_provider, orders_schema, settings):
        await sql_agent.generate("count orders", [orders_schema])

        request = mock_llm_provider.last_request
        assert request.temperature == settings.pipeline.sql_temperature
        assert request.model == settings.pipeline.sql_model
        assert request.max_tokens is None

    @pytest.mark.asyncio
    async def test_request_options_override(self, sql_agent, mock_llm_provider, orders_schema):
        options = NLQueryOptions(model="gpt-4o-2024-08-06", temperature=0.0, max_tokens=256)

        await sql_agent.generate("count orders", [orders_schema], options)

        request = mock_llm_provider.last_request
        assert request.model == "gpt-4o-2024-08-06"
        assert request.temperature == 0.0
        assert request.max_tokens == 256

    @pytest.mark.asyncio
    async def test_no_schemas(self, sql_agent, mock_llm_provider):
        await sql_agent.generate("count orders", [])

        assert "No schema information available." in mock_llm_provider.last_prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("question", ["", "  \n"])
    async def test_empty_question(self, sql_agent, mock_llm_provider, question):
        with pytest.raises(InvalidInputError):
            await sql_agent.generate(question, [])

        mock_llm_provider.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure(self, sql_agent, mock_llm_provider, orders_schema):
        mock_llm_provider.set_error(TimeoutError("request timed out"))

        with pytest.raises(LLMError) as exc_info:
            await sql_agent.generate("count orders", [orders_schema])

        assert "request timed out" in exc_info.value.message
        assert exc_info.value.kind == "upstream"

    @pytest.mark.asyncio
    async def test_empty_output_is_returned_as_is(self, sql_agent, mock_llm_provider):
        mock_llm_provider.set_response("   ")

        assert await sql_agent.generate("count orders", []) == ""


class TestAgentInterface:
    """Test execution through BaseAgent.__call__."""

    @pytest.mark.asyncio
    async def test_call_tracks_llm_usage(self, sql_agent, orders_schema):
        output = await sql_agent(
            SQLAgentInput(query="count orders", schemas=[orders_schema], dialect="MySQL")
        )

        assert output.success is True
        assert output.generated_sql.sql == "SELECT 1"
        assert output.generated_sql.model == "mock-model"
        assert output.generated_sql.tables_in_prompt == ["SALES.PUBLIC.ORDERS"]
        assert output.metadata.llm_calls == 1
        assert output.metadata.tokens_used == 15

    def test_default_provider_comes_from_factory(self, settings, mock_llm_provider):
        with patch(
            "nlquery.agents.sql.LLMProviderFactory.create_agent_provider",
            return_value=mock_llm_provider,
        ) as factory:
            agent = SQLAgent(settings=settings)

        assert agent.llm is mock_llm_provider
        factory.assert_called_once_with(agent_name="sql", config=settings.llm, model_type="main")
