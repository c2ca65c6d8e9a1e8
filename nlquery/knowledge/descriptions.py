"""
Description heuristics for schema indexing.

Tables and columns without catalog comments still need a sentence in the
knowledge collection so semantic search has something to match. These
rules derive one from names and types.
"""

from collections.abc import Sequence

# (name fragments, description), first match wins
_TABLE_NAME_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("user", "customer"), "Contains user or customer information"),
    (("order",), "Contains order information"),
    (("product", "item"), "Contains product information"),
    (("transaction",), "Contains transaction records"),
    (("log",), "Contains log entries"),
    (("config", "setting"), "Contains configuration or settings"),
)

_COLUMN_NAME_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("email",), "Email address"),
    (("phone",), "Phone number"),
    (("address",), "Address information"),
    (("date", "time"), "Date or timestamp"),
    (("price", "cost", "amount", "total"), "Monetary value or amount"),
    (("status", "state"), "Status or state indicator"),
)

# Checked in order, so "timestamp" must precede "time" and "date"
_COLUMN_TYPE_RULES: tuple[tuple[str, str], ...] = (
    ("bool", "Boolean flag or indicator"),
    ("int", "Numeric value"),
    ("number", "Numeric value"),
    ("numeric", "Numeric value"),
    ("decimal", "Numeric value"),
    ("char", "Text value"),
    ("text", "Text value"),
    ("timestamp", "Timestamp value"),
    ("date", "Date value"),
    ("time", "Time value"),
)

_MONEY_COLUMNS = ("amount", "total", "price")


def infer_table_purpose(
    table: str, column_names: Sequence[str], row_count: int | None = None
) -> str:
    """Guess what a table holds from its name, then its columns."""
    name = table.lower()
    for fragments, description in _TABLE_NAME_RULES:
        if any(fragment in name for fragment in fragments):
            return description

    columns = [column.lower() for column in column_names]
    if "id" in columns and any(c in columns for c in ("name", "description", "title")):
        return "Contains entity records with identifiers and descriptions"

    if any("date" in c or "time" in c for c in columns):
        if any(money in c for c in columns for money in _MONEY_COLUMNS):
            return "Contains time-based financial or transactional records"
        return "Contains time-based records"

    rows = row_count if row_count is not None else "unknown"
    return f"Table containing {len(columns)} columns and approximately {rows} rows"


def infer_column_description(name: str, data_type: str) -> str:
    """Guess what a column holds from its name, then its type."""
    lower_name = name.lower()
    lower_type = (data_type or "").lower()

    if lower_name == "id" or lower_name.endswith("_id"):
        return "Unique identifier"
    if lower_name == "name" or lower_name.endswith("_name"):
        return "Name or title"
    if lower_name == "description" or lower_name.endswith("_description"):
        return "Description text"
    if lower_name in {"created_at", "updated_at", "deleted_at"}:
        return "Date or timestamp"

    for fragments, description in _COLUMN_NAME_RULES:
        if any(fragment in lower_name for fragment in fragments):
            return description

    if lower_name.startswith(("is_", "has_")):
        return "Boolean flag or indicator"

    for fragment, description in _COLUMN_TYPE_RULES:
        if fragment in lower_type:
            return description

    return f"Column of type {data_type or 'unknown'}"
