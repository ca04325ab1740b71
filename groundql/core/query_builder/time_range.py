"""
Relative time expressions for GroundQL.

Compiles a closed vocabulary of relative phrases ("today", "this month",
"last 30 days", ...) into PostgreSQL boolean expressions built from
date_trunc / current_date / interval arithmetic. Output is inserted into
WHERE as a raw sub-expression, so nothing outside this vocabulary is
ever emitted; unrecognized phrases compile to None.
"""

import re

# Period name -> length of one period as an interval literal
_PERIODS: dict[str, str] = {
    "week": "1 week",
    "month": "1 month",
    "quarter": "3 months",
    "year": "1 year",
}

_THIS_OR_LAST = re.compile(r"(this|last|current|previous)\s+(week|month|quarter|year)")
_LAST_N = re.compile(r"(?:last|past)\s+(\d{1,4})\s+(day|week|month|year)s?")
_ABSOLUTE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}([ t]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(z|[+-]\d{2}:?\d{2})?)?$")

_TOMORROW = "current_date + interval '1 day'"


def _normalize(phrase: str) -> str:
    return " ".join(phrase.lower().split())


def is_absolute_date(value: str) -> bool:
    """Check whether a bound is an ISO date or timestamp string."""
    return bool(_ABSOLUTE_DATE.match(_normalize(value)))


def compile_relative(phrase: str, column: str, end_only: bool = False) -> str | None:
    """
    Compile a relative phrase into a boolean SQL expression on ``column``.

    Args:
        phrase: Relative expression such as "this week" or "last 6 months".
        column: Qualified timestamp column (e.g. "activities.created_at").
        end_only: Return only the upper-bound condition (used when the
            phrase is the end of a range).

    Returns:
        SQL expression, or None if the phrase is not in the vocabulary.
    """
    text = _normalize(phrase)

    if text == "today":
        if end_only:
            return f"{column} < {_TOMORROW}"
        return f"{column} >= current_date AND {column} < {_TOMORROW}"

    if text == "yesterday":
        if end_only:
            return f"{column} < current_date"
        return f"{column} >= current_date - interval '1 day' AND {column} < current_date"

    match = _THIS_OR_LAST.fullmatch(text)
    if match:
        which, period = match.groups()
        start_of = f"date_trunc('{period}', current_date)"
        length = _PERIODS[period]

        if which in ("this", "current"):
            upper = f"{start_of} + interval '{length}'"
            if end_only:
                return f"{column} < {upper}"
            return f"{column} >= {start_of} AND {column} < {upper}"

        if end_only:
            return f"{column} < {start_of}"
        return f"{column} >= {start_of} - interval '{length}' AND {column} < {start_of}"

    match = _LAST_N.fullmatch(text)
    if match:
        count = int(match.group(1))
        unit = match.group(2)
        if end_only:
            return f"{column} < {_TOMORROW}"
        if unit == "day":
            lower = f"current_date - interval '{count} days'"
        else:
            lower = f"date_trunc('{unit}', current_date) - interval '{count} {unit}s'"
        return f"{column} >= {lower} AND {column} < {_TOMORROW}"

    return None
