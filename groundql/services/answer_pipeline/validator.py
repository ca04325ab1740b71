"""Post-generation checks that keep answers tied to their grounding context."""

import logging
import re

from groundql.llm.prompts.answer import AnswerMode

logger = logging.getLogger(__name__)

VERIFICATION_NOTE = (
    "⚠️ **Note:** Some numbers in this response may need verification. "
    "Please cross-reference with the source data.\n\n"
)
GROUNDED_PREFIX = "Based on the query results:\n\n"
GROUNDED_PHRASE = "Based on the query results"

NUMBER_TOLERANCE = 0.01

_NUMBER = re.compile(r"[\d,]+\.?\d*")
_DATE = re.compile(r"\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4}|\w+ \d{1,2}, \d{4}")

# Phrases that claim an authority the context does not establish.
UNGROUNDED_PHRASES = (
    re.compile(r"according to our records", re.IGNORECASE),
    re.compile(r"our database shows", re.IGNORECASE),
    re.compile(r"we have data indicating", re.IGNORECASE),
)


def extract_numbers(text: str) -> list[float]:
    numbers = []
    for match in _NUMBER.findall(text):
        try:
            numbers.append(float(match.replace(",", "")))
        except ValueError:
            continue
    return numbers


def extract_dates(text: str) -> list[str]:
    return _DATE.findall(text)


def validate_answer(answer: str, context: str, mode: AnswerMode | str) -> str:
    """
    Check a generated answer against the context it was grounded on.

    In QUERY mode, numbers or dates the context does not contain earn a
    verification note, and an answer that never mentions the query, data
    or results is prefixed with a grounding line. In both modes, claims
    about "our records" are rewritten when the context never mentions a
    database or query.

    Returns:
        The possibly amended answer.
    """
    mode = AnswerMode(mode)
    context_lower = context.lower()

    if mode == AnswerMode.QUERY:
        context_numbers = extract_numbers(context)
        suspicious_numbers = [
            n
            for n in extract_numbers(answer)
            if not any(abs(n - c) < NUMBER_TOLERANCE for c in context_numbers)
        ]

        context_dates = set(extract_dates(context))
        suspicious_dates = [d for d in extract_dates(answer) if d not in context_dates]

        if suspicious_numbers:
            logger.warning("Answer cites numbers absent from context: %s", suspicious_numbers[:10])
        if suspicious_dates:
            logger.warning("Answer cites dates absent from context: %s", suspicious_dates[:10])
        if suspicious_numbers or suspicious_dates:
            answer = VERIFICATION_NOTE + answer

    if "database" not in context_lower and "query" not in context_lower:
        for pattern in UNGROUNDED_PHRASES:
            answer = pattern.sub(GROUNDED_PHRASE, answer)

    if mode == AnswerMode.QUERY:
        answer_lower = answer.lower()
        if not any(word in answer_lower for word in ("query", "data", "result")):
            answer = GROUNDED_PREFIX + answer

    return answer
