"""Query execution layer."""

import math
import re
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

_PLACEHOLDER = re.compile(r"\$(\d+)\b")


class QueryExecutionError(Exception):
    """Raised when query execution fails."""

    pass


class QueryExecutor(Protocol):
    """Runs a fully substituted SQL string and returns row dicts."""

    async def execute(self, sql: str) -> list[dict[str, Any]]: ...


def render_literal(value: Any) -> str:
    """
    Render a Python value as a SQL literal.

    Raises:
        QueryExecutionError: For NaN or infinite numbers, which have no
            SQL literal form.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat()}'"
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise QueryExecutionError(f"Cannot render non-finite number {value} as SQL")
        return format(value, "f")
    if isinstance(value, float) and not math.isfinite(value):
        raise QueryExecutionError(f"Cannot render non-finite number {value} as SQL")
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def substitute_params(sql: str, params: Sequence[Any]) -> str:
    """
    Inline positional parameters into ``$n`` placeholders.

    Each placeholder is matched as a whole token, so ``$1`` never touches
    ``$10``. Placeholders without a matching parameter are left as-is.

    Args:
        sql: SQL with ``$1..$n`` placeholders.
        params: Values in placeholder order.

    Returns:
        SQL with every bound placeholder replaced by a literal.
    """

    def replace(match: re.Match) -> str:
        index = int(match.group(1)) - 1
        if 0 <= index < len(params):
            return render_literal(params[index])
        return match.group(0)

    return _PLACEHOLDER.sub(replace, sql)


class SQLAlchemyQueryExecutor:
    """
    Executes substituted SQL through an async SQLAlchemy session.

    This is a thin execution layer with no business logic.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def execute(self, sql: str) -> list[dict[str, Any]]:
        """
        Run a SQL string and return its rows.

        Raises:
            QueryExecutionError: If execution fails. The driver message
                is not included.
        """
        try:
            async with self._session_factory() as session:
                # Inlined literals may contain colons; none are bind parameters
                result = await session.execute(text(sql.replace(":", r"\:")))
                return [dict(row) for row in result.mappings().all()]
        except Exception as e:
            # Don't expose raw SQL errors to users
            raise QueryExecutionError(
                f"Query execution failed: {type(e).__name__}"
            ) from e
