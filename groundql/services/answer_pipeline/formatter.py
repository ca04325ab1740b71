"""
Context formatter for GroundQL.

Turns query rows and the asking user into the plain-text grounding
context handed to the answer generator. The output shape depends on the
result: a short line for single aggregates, a comparison table with
insights for small sets, a boxed table otherwise, and summary statistics
plus a sample for large sets.
"""

import json
import math
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from groundql.core.intent import IntentCategory, QueryIntent
from groundql.core.query_builder.models import UserContext

MAX_TABLE_ROWS = 50
SAMPLE_ROWS = 10
COLUMN_WIDTH = 30
MAX_VALUE_LENGTH = 50

AGGREGATE_KEYS = frozenset({"count", "sum", "total", "average", "avg", "min_value", "max_value"})
CURRENCY_HINTS = ("price", "cost", "value", "amount", "revenue")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")

# Stats keys shown in the user context block, in display order.
_USER_STATS_LABELS = (
    ("totalAccounts", "Total Accounts"),
    ("totalLeads", "Total Leads"),
    ("totalActivities", "Total Activities"),
    ("quotationsLast30Days", "Quotations (Last 30 Days)"),
    ("engagementScore", "Engagement Score"),
    ("streak", "Activity Streak"),
)


class ContextFormattingError(Exception):
    """Raised when query results cannot be rendered as context."""

    pass


# -----------------------------
# Public API
# -----------------------------


def format_query_results(
    results: list[dict[str, Any]],
    question: str,
    intent: QueryIntent | None = None,
) -> str:
    """
    Render query rows as grounding context.

    Args:
        results: Row dicts as returned by the executor.
        question: The user's question, echoed in headers.
        intent: Classified intent; its category steers the layout.

    Returns:
        Formatted context text.

    Raises:
        ContextFormattingError: If the rows cannot be rendered.
    """
    try:
        if not results:
            return format_no_results(question)

        if len(results) > MAX_TABLE_ROWS:
            return _format_large_result_set(results, question)

        if _is_aggregation_result(results):
            return _format_aggregation_result(results, question)

        if _is_comparison(results, intent):
            return _format_comparison_result(results)

        return _format_table(results)
    except Exception as e:
        raise ContextFormattingError(f"Could not format query results: {type(e).__name__}: {e}") from e


def format_no_results(question: str) -> str:
    return (
        f'No results found for your query: "{question}"\n\n'
        "This could mean:\n"
        "- The data doesn't exist in the database\n"
        "- The filters are too restrictive\n"
        "- There might be a typo in names or values"
    )


def format_user_context(user_context: UserContext) -> str:
    """Describe the asking user and their current statistics."""
    lines = ["User Context:"]
    if user_context.name:
        lines.append(f"  Name: {user_context.name}")
    if user_context.email:
        lines.append(f"  Email: {user_context.email}")
    lines.append(f"  Role: {user_context.role}")
    if user_context.user_id is not None:
        lines.append(f"  ID: {user_context.user_id}")
    if user_context.permissions:
        lines.append(f"  Permissions: {', '.join(user_context.permissions)}")

    stats = user_context.stats or {}
    stat_lines = []
    for key, label in _USER_STATS_LABELS:
        value = stats.get(key)
        if value is None:
            continue
        if key == "engagementScore" and isinstance(value, (int, float)):
            value = f"{value:.1f}"
        elif key == "streak":
            value = f"{value} days"
        stat_lines.append(f"  - {label}: {value}")

    if stat_lines:
        lines.append("")
        lines.append("Current Statistics:")
        lines.extend(stat_lines)

    return "\n".join(lines)


def format_value(value: Any, column: str = "") -> str:
    """Render a single cell for display."""
    if value is None:
        return "NULL"

    if isinstance(value, (date, datetime)):
        return _format_date(value)
    if isinstance(value, str) and _ISO_DATE.match(value):
        parsed = _parse_date(value)
        if parsed is not None:
            return _format_date(parsed)

    if isinstance(value, bool):
        return "Yes" if value else "No"

    number = _as_number(value)
    if number is not None and any(hint in column.lower() for hint in CURRENCY_HINTS):
        return f"${number:,.2f}"
    if number is not None and not isinstance(value, str):
        if number.is_integer():
            return f"{int(number):,}"
        return f"{number:,.2f}"

    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)

    text = str(value)
    if len(text) > MAX_VALUE_LENGTH:
        return text[: MAX_VALUE_LENGTH - 3] + "..."
    return text


def format_column_name(column: str) -> str:
    """snake_case or camelCase to Title Case."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", column).replace("_", " ")
    return " ".join(word.capitalize() for word in spaced.split())


# -------------------------
# Layouts
# -------------------------


def _format_aggregation_result(results: list[dict[str, Any]], question: str) -> str:
    row = results[0]
    if len(row) == 1:
        column, value = next(iter(row.items()))
        return f'Query: "{question}"\nResult: {format_value(value, column)}'

    lines = [f'Query: "{question}"', "Results:"]
    for column, value in row.items():
        lines.append(f"  - {format_column_name(column)}: {format_value(value, column)}")
    return "\n".join(lines)


def _format_comparison_result(results: list[dict[str, Any]]) -> str:
    parts = ["Comparison Results:", "", _format_table(results)]

    insights = _generate_insights(results)
    if insights:
        parts.extend(["", "Key Insights:"])
        parts.extend(f"  - {insight}" for insight in insights)

    return "\n".join(parts)


def _format_large_result_set(results: list[dict[str, Any]], question: str) -> str:
    total = len(results)
    parts = [
        f'Found {total} results for "{question}". Showing summary and first {SAMPLE_ROWS} rows:',
        "",
    ]

    summary = _summary_statistics(results)
    if summary:
        parts.append("Summary Statistics:")
        parts.extend(summary)
        parts.append("")

    parts.append(_format_table(results[:SAMPLE_ROWS]))
    parts.append(f"\n... and {total - SAMPLE_ROWS} more rows (truncated for brevity)")
    return "\n".join(parts)


def _format_table(results: list[dict[str, Any]]) -> str:
    """Box-drawn table of at most MAX_TABLE_ROWS rows."""
    columns = list(results[0].keys())
    shown = results[:MAX_TABLE_ROWS]
    width = COLUMN_WIDTH

    def border(left: str, mid: str, right: str) -> str:
        return left + mid.join("─" * (width + 2) for _ in columns) + right

    def row_line(cells: list[str]) -> str:
        return "│" + "│".join(f" {_pad(cell, width)} " for cell in cells) + "│"

    lines = [
        border("┌", "┬", "┐"),
        row_line([format_column_name(c) for c in columns]),
        border("├", "┼", "┤"),
    ]
    for row in shown:
        lines.append(row_line([format_value(row.get(c), c) for c in columns]))
    lines.append(border("└", "┴", "┘"))

    if len(results) > MAX_TABLE_ROWS:
        lines.append(f"(Showing {MAX_TABLE_ROWS} of {len(results)} rows)")

    return "\n".join(lines)


# -------------------------
# Helpers
# -------------------------


def _is_aggregation_result(results: list[dict[str, Any]]) -> bool:
    if len(results) != 1:
        return False
    return any(key.lower() in AGGREGATE_KEYS for key in results[0])


def _is_comparison(results: list[dict[str, Any]], intent: QueryIntent | None) -> bool:
    if intent is not None and intent.category in (
        IntentCategory.COMPARISON_QUERY,
        IntentCategory.TREND_QUERY,
    ):
        return True
    return 1 < len(results) <= 10


def _numeric_columns(results: list[dict[str, Any]]) -> list[str]:
    """Columns where at least 70% of the first ten values are numbers."""
    sample = results[:10]
    numeric = []
    for column in results[0]:
        values = [row.get(column) for row in sample]
        count = sum(1 for v in values if not isinstance(v, bool) and _as_number(v) is not None)
        if values and count / len(values) >= 0.7:
            numeric.append(column)
    return numeric


def _column_numbers(results: list[dict[str, Any]], column: str) -> list[float]:
    numbers = []
    for row in results:
        value = row.get(column)
        if isinstance(value, bool):
            continue
        number = _as_number(value)
        if number is not None:
            numbers.append(number)
    return numbers


def _summary_statistics(results: list[dict[str, Any]]) -> list[str]:
    lines = []
    for column in _numeric_columns(results):
        numbers = _column_numbers(results, column)
        if not numbers:
            continue
        total = sum(numbers)
        lines.append(
            f"  - {format_column_name(column)}: "
            f"Total={format_value(total, column)}, "
            f"Average={format_value(total / len(numbers), column)}, "
            f"Min={format_value(min(numbers), column)}, "
            f"Max={format_value(max(numbers), column)}"
        )
    return lines


def _generate_insights(results: list[dict[str, Any]]) -> list[str]:
    insights = []
    for column in _numeric_columns(results):
        numbers = _column_numbers(results, column)
        if len(numbers) < 2:
            continue
        low, high = min(numbers), max(numbers)
        if low == high:
            continue
        line = f"{format_column_name(column)} ranges from {format_value(low, column)} to {format_value(high, column)}"
        if low > 0:
            line += f" ({(high - low) / low * 100:.1f}% difference)"
        insights.append(line)
    return insights


def _pad(text: str, width: int) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text.ljust(width)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            number = float(value.replace(",", ""))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, Decimal):
        return float(value)
    return None


def _parse_date(value: str) -> date | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None


def _format_date(value: date) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"
