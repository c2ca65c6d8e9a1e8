"""
NLQuery CLI

Command-line interface for the NLQuery pipeline.

Usage:
    nlquery ask sales "What was total revenue last month?"    # Routed answer
    nlquery query sales "Top 10 customers by revenue"         # SQL path only
    nlquery route "How is churn calculated?"                  # Routing decision
    nlquery entities "revenue in 2023Q2 was $1500"            # Extracted entities
    nlquery schema sales                                      # Resolved schema
    nlquery index sales                                       # Build knowledge index
    nlquery tables sales "orders by region"                   # Relevant tables
    nlquery sources                                           # Configured data sources
"""

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from nlquery import __version__
from nlquery.agents.entities import extract_entities
from nlquery.agents.router import RouterAgent
from nlquery.agents.schema_resolver import SchemaResolverAgent
from nlquery.config import get_settings
from nlquery.connectors.registry import ConnectionRegistry
from nlquery.models.agent import AgentError
from nlquery.models.query import (
    CodeExecutionResult,
    HybridResult,
    NLQueryOptions,
    NLQueryResult,
    QueryResponse,
    RagResult,
    SchemaMetadata,
    TabularResult,
)
from nlquery.pipeline.dual_path import create_routing_service
from nlquery.pipeline.orchestrator import build_knowledge_store, create_pipeline

console = Console()

MAX_DISPLAY_ROWS = 50


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        get_settings().logging.configure()
        return
    logging.basicConfig(level=logging.CRITICAL)
    for logger_name in ("nlquery", "httpx", "openai", "anthropic", "chromadb", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


# ============================================================================
# Output Formatting
# ============================================================================


def print_table_result(result: TabularResult) -> None:
    if not result.columns:
        console.print("[dim]No columns returned.[/dim]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    for column in result.columns:
        table.add_column(str(column))
    for row in result.rows[:MAX_DISPLAY_ROWS]:
        table.add_row(*["" if value is None else str(value) for value in row])
    console.print(table)
    if result.row_count > MAX_DISPLAY_ROWS:
        console.print(f"[dim]Showing {MAX_DISPLAY_ROWS} of {result.row_count} rows.[/dim]")


def print_query_result(data: NLQueryResult) -> None:
    console.print(Panel(data.sql, title="SQL", border_style="cyan", highlight=True))
    print_table_result(data.result)
    if data.reasoning:
        console.print(Panel(Markdown(data.reasoning), title="[bold green]Reasoning[/bold green]"))

    timing = data.timing
    metrics = f"total {timing.total:.0f}ms · sql {timing.sql_generation:.0f}ms · execution {timing.execution:.0f}ms"
    if timing.reasoning is not None:
        metrics += f" · reasoning {timing.reasoning:.0f}ms"
    console.print(f"[dim]{data.result.row_count} rows · {metrics}[/dim]")


def print_rag_result(rag: RagResult) -> None:
    console.print(Panel(Markdown(rag.content), title="[bold green]Answer[/bold green]"))
    if rag.sources:
        names = [
            ".".join(str(source[key]) for key in ("database", "schema", "table", "column") if key in source)
            for source in rag.sources
        ]
        console.print(f"[dim]Sources: {', '.join(names)}[/dim]")


def print_response(response: QueryResponse) -> None:
    routing = response.routing
    console.print(
        f"[bold]Path:[/bold] [cyan]{routing.path}[/cyan] "
        f"[dim](confidence {routing.confidence:.2f})[/dim]"
    )
    result = response.result
    if isinstance(result, RagResult):
        print_rag_result(result)
    elif isinstance(result, CodeExecutionResult):
        print_query_result(result.data)
    elif isinstance(result, HybridResult):
        if result.rag_result:
            print_rag_result(result.rag_result)
        if result.code_execution_result:
            print_query_result(result.code_execution_result.data)


def print_schemas(schemas: list[SchemaMetadata]) -> None:
    table = Table(title="Tables", show_header=True, header_style="bold cyan")
    table.add_column("Table")
    table.add_column("Columns", justify="right")
    table.add_column("Rows", justify="right")
    table.add_column("Description")
    for schema in schemas:
        table.add_row(
            schema.key,
            str(len(schema.columns)),
            "" if schema.row_count is None else str(schema.row_count),
            schema.description or "",
        )
    console.print(table)


def print_error(error: Exception) -> None:
    if isinstance(error, AgentError):
        console.print(f"[red]Error ({error.kind}): {error.message}[/red]")
    else:
        console.print(f"[red]Error: {error}[/red]")


def build_options(tables: tuple[str, ...], reasoning: bool | None, knowledge: bool) -> NLQueryOptions:
    return NLQueryOptions(
        filter_tables=list(tables) or None,
        include_reasoning=reasoning,
        use_knowledge_collections=knowledge,
    )


def _registry() -> ConnectionRegistry:
    return ConnectionRegistry.from_settings(get_settings())


async def _knowledge_store():
    store = build_knowledge_store(get_settings())
    await store.initialize()
    return store


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="NLQuery")
@click.option("--verbose", "-v", is_flag=True, help="Show pipeline logs")
def cli(verbose: bool):
    """NLQuery - ask questions of your databases in natural language."""
    configure_cli_logging(verbose)


@cli.command()
@click.argument("data_source")
@click.argument("question")
@click.option("--table", "tables", multiple=True, help="Restrict to database.schema.table")
@click.option("--reasoning/--no-reasoning", default=None, help="Explain the result")
@click.option("--knowledge/--no-knowledge", default=True, help="Use the knowledge index")
@click.option("--json", "as_json", is_flag=True, help="Print the response envelope as JSON")
def ask(data_source, question, tables, reasoning, knowledge, as_json):
    """Route a question and answer it."""

    async def run_ask() -> None:
        connectors = _registry()
        try:
            service = await create_routing_service(connectors=connectors)
            with console.status("[cyan]Processing question...[/cyan]", spinner="dots"):
                response = await service.handle(
                    data_source, question, build_options(tables, reasoning, knowledge)
                )
            if as_json:
                click.echo(json.dumps(response.to_wire(), indent=2, default=str))
            else:
                print_response(response)
        finally:
            await connectors.close_all()

    try:
        asyncio.run(run_ask())
    except Exception as e:
        print_error(e)
        sys.exit(1)


@cli.command()
@click.argument("data_source")
@click.argument("question")
@click.option("--table", "tables", multiple=True, help="Restrict to database.schema.table")
@click.option("--reasoning/--no-reasoning", default=None, help="Explain the result")
@click.option("--knowledge/--no-knowledge", default=True, help="Use the knowledge index")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def query(data_source, question, tables, reasoning, knowledge, as_json):
    """Generate and run SQL for a question."""

    async def run_query() -> None:
        connectors = _registry()
        try:
            pipeline = await create_pipeline(connectors=connectors)
            with console.status("[cyan]Running query...[/cyan]", spinner="dots"):
                result = await pipeline.run(
                    data_source, question, build_options(tables, reasoning, knowledge)
                )
            if as_json:
                click.echo(json.dumps(result.to_wire(), indent=2, default=str))
            else:
                print_query_result(result)
        finally:
            await connectors.close_all()

    try:
        asyncio.run(run_query())
    except Exception as e:
        print_error(e)
        sys.exit(1)


@cli.command()
@click.argument("question")
def route(question):
    """Show the processing path chosen for a question."""
    try:
        decision = asyncio.run(RouterAgent().route(question))
    except Exception as e:
        print_error(e)
        sys.exit(1)

    table = Table(show_header=False, box=None)
    table.add_row("Path:", f"[cyan]{decision.path}[/cyan]")
    table.add_row("Confidence:", f"{decision.confidence:.2f}")
    table.add_row("Time:", f"{decision.processing_time_ms:.1f}ms")
    console.print(table)


@cli.command()
@click.argument("question")
def entities(question):
    """List the entities extracted from a question."""
    found = extract_entities(question)
    if not found:
        console.print("[yellow]No entities found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Entity")
    table.add_column("Category")
    for entity in found:
        table.add_row(entity.value, str(entity.category))
    console.print(table)


@cli.command()
@click.argument("data_source")
@click.option("--table", "tables", multiple=True, help="Restrict to database.schema.table")
@click.option("--introspect", is_flag=True, help="Skip the knowledge index")
def schema(data_source, tables, introspect):
    """Show the schema context resolved for a data source."""

    async def run_schema() -> None:
        connectors = _registry()
        try:
            store = None if introspect else await _knowledge_store()
            resolver = SchemaResolverAgent(knowledge_store=store, connectors=connectors)
            schemas, tier = await resolver.resolve_with_tier(
                data_source, filter_tables=list(tables) or None, use_knowledge=not introspect
            )
        finally:
            await connectors.close_all()

        if not schemas:
            console.print("[yellow]No tables resolved.[/yellow]")
            if tier == "none" and not introspect:
                console.print("[dim]Hint: run 'nlquery index' or use --introspect.[/dim]")
            return
        print_schemas(schemas)
        console.print(f"[dim]Resolved from {tier}.[/dim]")

    try:
        asyncio.run(run_schema())
    except Exception as e:
        print_error(e)
        sys.exit(1)


@cli.command()
@click.argument("data_source")
@click.option("--table", "tables", multiple=True, help="Restrict to database.schema.table")
@click.option(
    "--rebuild", is_flag=True, help="Drop the existing index first (only the given tables with --table)"
)
def index(data_source, tables, rebuild):
    """Introspect a data source and index its schema."""

    async def run_index() -> None:
        connectors = _registry()
        try:
            connectors.get_data_source(data_source)
            store = await _knowledge_store()
            resolver = SchemaResolverAgent(connectors=connectors)
            with console.status("[cyan]Introspecting...[/cyan]", spinner="dots"):
                schemas = await resolver.resolve_from_introspection(
                    data_source, set(tables) if tables else None
                )
        finally:
            await connectors.close_all()

        if not schemas:
            console.print("[yellow]No tables found to index.[/yellow]")
            return
        # with --table only the named tables are replaced; the rest of the index stays
        if rebuild and not tables and await store.delete_collection(data_source):
            console.print(f"[dim]Dropped existing index for {data_source}.[/dim]")
        with console.status("[cyan]Indexing...[/cyan]", spinner="dots"):
            records = await store.index_schemas(data_source, schemas, prune=not tables)
        console.print(f"[green]✓ Indexed {len(schemas)} tables ({records} records)[/green]")

    try:
        asyncio.run(run_index())
    except Exception as e:
        print_error(e)
        sys.exit(1)


@cli.command()
@click.argument("data_source")
@click.argument("question")
@click.option("--limit", default=5, show_default=True, type=int, help="Maximum tables")
def tables(data_source, question, limit):
    """Find the indexed tables most relevant to a question."""

    async def run_tables() -> list[dict]:
        store = await _knowledge_store()
        return await store.find_relevant_tables(data_source, question, limit=limit)

    try:
        records = asyncio.run(run_tables())
    except Exception as e:
        print_error(e)
        sys.exit(1)

    if not records:
        console.print("[yellow]No indexed tables found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Table")
    table.add_column("Distance", justify="right")
    table.add_column("Description")
    for record in records:
        payload = record.get("payload") or {}
        distance = record.get("distance")
        table.add_row(
            f"{payload.get('database')}.{payload.get('schema')}.{payload.get('table')}",
            "" if distance is None else f"{distance:.3f}",
            payload.get("description") or "",
        )
    console.print(table)


@cli.command()
def sources():
    """List configured data sources."""
    try:
        data_sources = _registry().list_data_sources()
    except Exception as e:
        print_error(e)
        sys.exit(1)

    if not data_sources:
        config_path = get_settings().data_sources.config_path
        console.print(f"[yellow]No data sources configured in {config_path}.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Organization")
    for data_source in data_sources:
        table.add_row(
            data_source.id,
            data_source.display_name,
            data_source.database_type or "auto",
            data_source.organization_id or "",
        )
    console.print(table)


# ============================================================================
# Entry Point
# ============================================================================


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
