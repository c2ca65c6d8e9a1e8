"""
SQLAgent

Generates a SQL statement from a natural language question, grounded in
the resolved schema metadata.

The SQLAgent:
1. Renders the schema context (one block per table)
2. Builds the prompt from agents/sql_generator.md
3. Calls the configured LLM with the request's model and temperature
4. Returns the trimmed statement, with any markdown fence removed

No syntax validation happens here; invalid statements surface when the
executor runs them.
"""

import logging
import re
from collections.abc import Sequence

from nlquery.agents.base import BaseAgent
from nlquery.config import Settings, get_settings
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.factory import LLMProviderFactory
from nlquery.llm.models import LLMMessage, LLMRequest
from nlquery.models.agent import (
    GeneratedSQL,
    InvalidInputError,
    LLMError,
    SQLAgentInput,
    SQLAgentOutput,
)
from nlquery.models.query import NLQueryOptions, SchemaMetadata
from nlquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "No description available"

_CODE_FENCE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def format_table(schema: SchemaMetadata) -> str:
    """Render one table as a prompt block."""
    lines = [
        f"Table: {schema.key}",
        f"Description: {schema.description or NO_DESCRIPTION}",
        "Columns:",
    ]
    for column in schema.columns:
        line = f"  {column.name} ({column.type})"
        if column.description:
            line += f": {column.description}"
        lines.append(line)
    if schema.row_count is not None:
        lines.append(f"Row count: ~{schema.row_count}")
    return "\n".join(lines)


def build_schema_context(schemas: Sequence[SchemaMetadata]) -> str:
    """Schema section of the generation prompt."""
    if not schemas:
        return "No schema information available."
    return "\n\n".join(format_table(schema) for schema in schemas)


def clean_sql(text: str) -> str:
    """Trim whitespace and a surrounding markdown code fence."""
    sql = text.strip()
    match = _CODE_FENCE.match(sql)
    if match:
        sql = match.group(1).strip()
    return sql


class SQLAgent(BaseAgent):
    """
    SQL generation agent.

    Usage:
        agent = SQLAgent()
        sql = await agent.generate(
            "What was total revenue last month?",
            schemas,
            NLQueryOptions(),
            dialect="PostgreSQL",
        )
    """

    def __init__(
        self,
        llm_provider: BaseLLMProvider | None = None,
        settings: Settings | None = None,
        prompts: PromptLoader | None = None,
    ):
        """
        Initialize SQLAgent with LLM provider.

        Args:
            llm_provider: Optional LLM provider. If None, creates the sql provider
            settings: Optional settings. If None, uses get_settings()
            prompts: Optional prompt loader
        """
        super().__init__(name="SQLAgent")
        self.settings = settings or get_settings()

        if llm_provider is None:
            self.llm = LLMProviderFactory.create_agent_provider(
                agent_name="sql",
                config=self.settings.llm,
                model_type="main",
            )
        else:
            self.llm = llm_provider
        self.prompts = prompts or PromptLoader()

    async def execute(self, input: SQLAgentInput) -> SQLAgentOutput:
        generated = await self._generate(input.query, input.schemas, input.options, input.dialect)
        return SQLAgentOutput(
            success=True,
            generated_sql=generated,
            data={"sql": generated.sql},
            metadata=self._create_metadata(),
        )

    async def generate(
        self,
        question: str,
        schemas: Sequence[SchemaMetadata],
        options: NLQueryOptions | None = None,
        dialect: str = "SQL",
    ) -> str:
        """
        Generate a statement for the question.

        Raises:
            InvalidInputError: If the question is empty
            LLMError: If the model call fails
        """
        generated = await self._generate(question, schemas, options or NLQueryOptions(), dialect)
        return generated.sql

    def build_prompt(self, question: str, schemas: Sequence[SchemaMetadata], dialect: str) -> str:
        return self.prompts.render(
            "agents/sql_generator.md",
            dialect=dialect,
            schema_context=build_schema_context(schemas),
            user_query=question,
        )

    async def _generate(
        self,
        question: str,
        schemas: Sequence[SchemaMetadata],
        options: NLQueryOptions,
        dialect: str,
    ) -> GeneratedSQL:
        if not question or not question.strip():
            raise InvalidInputError(agent=self.name, message="Question must not be empty")

        pipeline = self.settings.pipeline
        request = LLMRequest(
            messages=[
                LLMMessage(role="system", content=self.prompts.render("system/sql_expert.md")),
                LLMMessage(role="user", content=self.build_prompt(question, schemas, dialect)),
            ],
            model=options.model or pipeline.sql_model,
            temperature=(
                options.temperature if options.temperature is not None else pipeline.sql_temperature
            ),
            max_tokens=options.max_tokens,
        )

        logger.debug(
            f"[{self.name}] Generating SQL over {len(schemas)} tables",
            extra={"tables": [schema.key for schema in schemas], "dialect": dialect},
        )

        try:
            response = await self.llm.generate(request)
        except Exception as e:
            logger.error(f"[{self.name}] SQL generation failed: {e}", exc_info=True)
            raise LLMError(
                agent=self.name,
                message=f"SQL generation failed: {e}",
                context={"error_type": type(e).__name__},
            ) from e

        self._track_llm_call(tokens=response.usage.total_tokens)
        sql = clean_sql(response.content)

        logger.info(
            f"[{self.name}] Generated SQL ({len(sql)} chars)",
            extra={"model": response.model, "sql": sql},
        )
        return GeneratedSQL(
            sql=sql,
            model=response.model,
            tables_in_prompt=[schema.key for schema in schemas],
        )
