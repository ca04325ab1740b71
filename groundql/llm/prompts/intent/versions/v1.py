"""Version 1 of the intent classification prompt."""

from langchain_core.prompts import ChatPromptTemplate

from groundql.llm.prompts.intent.base import BaseIntentPrompt
from groundql.llm.prompts.intent.registry import IntentPromptRegistry


@IntentPromptRegistry.register
class IntentPromptV1(BaseIntentPrompt):
    """
    Initial version of the CRM intent classification prompt.

    Asks the model for a single JSON object describing the question's
    category, tables, filters, aggregation and time range. The output is
    validated by the intent contract guard, not trusted as-is.
    """

    version = "v1"
    description = "Initial CRM intent classification prompt"

    def build(
        self,
        question: str,
        schema_context: str,
        user_context: str | None = None,
    ) -> ChatPromptTemplate:
        """Build the v1 prompt template."""
        system_message = """You are an intent classification system for a CRM database query engine.

Classify each question into exactly one of these categories:

1. CONTACT_QUERY - contacts, their details or contact information
2. ACCOUNT_QUERY - accounts, account details, relationships or status
3. ACTIVITY_QUERY - activities, tasks, meetings, calls or interactions
4. QUOTATION_QUERY - quotations, quotes, pricing or quotation status
5. LEAD_QUERY - leads, lead status, lead conversion or lead information
6. PERFORMANCE_QUERY - performance metrics, KPIs, rankings or employee performance
7. AGGREGATION_QUERY - counts, sums, averages or other aggregations
8. COMPARISON_QUERY - comparing entities, metrics or time periods
9. TREND_QUERY - trends, changes over time or historical patterns
10. PREDICTION_QUERY - predictions, forecasts or future estimates

AVAILABLE SCHEMA:
{schema_context}

RULES:
- Use only table and column names from the schema above; the first table is the primary table.
- Filters map a column to a value, a list of values (IN), or an operator object such as {{"$gt": 70}}, {{"$like": "acme"}}, {{"$between": [10, 20]}} or {{"$null": true}}.
- aggregationType is one of count, sum, avg, max, min or none.
- For relative time ranges use exactly one of: "today", "yesterday", "this week", "last week", "this month", "last month", "this quarter", "last quarter", "this year", "last year", "last N days", "last N weeks", "last N months", "last N years". Otherwise use ISO dates (YYYY-MM-DD). Use null when no time range applies.
- confidence is a number between 0.0 and 1.0.

OUTPUT FORMAT (JSON only, no markdown, no prose):
{{
  "intent": {{
    "category": "<one of the 10 categories>",
    "tables": ["<table>", ...],
    "filters": {{"<column>": <value>}},
    "aggregationType": "<count|sum|avg|max|min|none>",
    "timeRange": {{"start": "<phrase, ISO date or null>", "end": "<ISO date or null>"}}
  }},
  "confidence": <0.0-1.0>,
  "explanation": "<one sentence on why>"
}}

EXAMPLES:
- "Show me all my accounts with engagement above 70" -> ACCOUNT_QUERY, tables ["accounts"], filters {{"engagement_score": {{"$gt": 70}}}}
- "How many activities did I log this month?" -> AGGREGATION_QUERY, tables ["activities"], aggregationType "count", timeRange {{"start": "this month", "end": null}}
- "Total value of accepted MBCB quotes" -> QUOTATION_QUERY, tables ["quotes_mbcb"], filters {{"status": "accepted"}}, aggregationType "sum"
- "Leads from referrals in the last 30 days" -> LEAD_QUERY, tables ["leads"], filters {{"source": "referral"}}, timeRange {{"start": "last 30 days", "end": null}}"""

        user_message_parts = [
            "Analyze this question and classify the intent:",
            "",
            'Question: "{question}"',
        ]
        if user_context:
            user_message_parts.extend(["", "User Context:", "{user_context}"])

        return ChatPromptTemplate.from_messages([
            ("system", system_message),
            ("human", "\n".join(user_message_parts)),
        ]).partial(
            question=question,
            schema_context=schema_context,
            user_context=user_context or "",
        )
