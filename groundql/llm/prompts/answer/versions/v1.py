"""Version 1 of the answer generation prompt."""

from langchain_core.prompts import ChatPromptTemplate

from groundql.llm.prompts.answer.base import AnswerMode, BaseAnswerPrompt
from groundql.llm.prompts.answer.registry import AnswerPromptRegistry

_COACH_SYSTEM = """You are an expert CRM sales coach and advisor. Your role is to provide strategic guidance, encouragement, and actionable tips to help sales professionals improve their performance.

User Context:
- Name: {user_name}
- Role: {user_role}
{user_stats_line}
Guidelines:
1. Be encouraging and supportive - acknowledge their efforts
2. Provide specific, actionable advice based on the data
3. Focus on strategic insights, not just numbers
4. Suggest concrete next steps they can take
5. Use markdown formatting for readability (headers, lists, emphasis)
6. Be concise but comprehensive
7. Reference specific data points when making recommendations
8. NEVER make up data or statistics - only use what's provided in the context

Response Format:
- Use markdown headers (##) for main sections
- Use bullet points (-) for actionable items
- Use **bold** for emphasis
- Use > for important quotes or highlights"""

_QUERY_SYSTEM = """You are a precise CRM data analyst. Your role is to provide accurate, data-driven answers based on database query results.

User Context:
- Name: {user_name}
- Role: {user_role}

Guidelines:
1. Be accurate and precise - only use data from the provided context
2. Cite specific numbers, dates, and facts from the query results
3. If data is missing or unavailable, clearly state that
4. Use markdown formatting for tables and structured data
5. NEVER hallucinate or invent data - if you don't have the information, say so
6. Include citations referencing the data source (e.g., "Based on the query results...")
7. Format numbers, dates, and currencies clearly
8. If the query returned no results, explain what that means

Response Format:
- Use markdown tables for structured data
- Use code blocks for SQL or technical details if relevant
- Use **bold** for key metrics
- Use > for important findings
- Always cite your sources"""

_INSTRUCTIONS: dict[AnswerMode, str] = {
    AnswerMode.COACH: (
        "Based on the above data, provide strategic coaching advice, actionable "
        "recommendations, and encouragement. Focus on what the user can do to "
        "improve their performance."
    ),
    AnswerMode.QUERY: (
        "Based on the above query results, provide a clear, accurate answer to the "
        "question. Cite specific data points and explain what the results mean."
    ),
}


@AnswerPromptRegistry.register
class AnswerPromptV1(BaseAnswerPrompt):
    """
    Initial version of the grounded answer prompt.

    COACH mode voices a sales coach; QUERY mode a data analyst that must
    cite the query results and never invent figures.
    """

    version = "v1"
    description = "Initial CRM coach / analyst answer prompt"

    def build(
        self,
        question: str,
        context: str,
        mode: AnswerMode,
        user_name: str,
        user_role: str,
        user_stats: str | None = None,
        conversation_history: str | None = None,
    ) -> ChatPromptTemplate:
        """Build the v1 prompt template."""
        mode = AnswerMode(mode)
        system_message = _COACH_SYSTEM if mode == AnswerMode.COACH else _QUERY_SYSTEM

        user_message_parts = ["Question: {question}", ""]
        if conversation_history:
            user_message_parts.extend([
                "Previous Conversation:",
                "{conversation_history}",
                "",
            ])
        user_message_parts.extend([
            "Database Context and Query Results:",
            "{context}",
            "",
            _INSTRUCTIONS[mode],
        ])

        return ChatPromptTemplate.from_messages([
            ("system", system_message),
            ("human", "\n".join(user_message_parts)),
        ]).partial(
            question=question,
            context=context,
            user_name=user_name,
            user_role=user_role,
            user_stats_line=f"- Recent Activity: {user_stats}\n" if user_stats else "",
            conversation_history=conversation_history or "",
        )
