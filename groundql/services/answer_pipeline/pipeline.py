"""
Answer Pipeline for GroundQL.

Orchestrates a grounded answer to a natural language question:
1. Fetch the user's context
2. Classify intent
3. Build parameterized SQL
4. Read from cache or execute
5. Format the grounding context
6. Generate (or stream) the answer and validate it
7. Record the turn in conversation memory

Each stage recovers locally; a failing stage ends the run with a
well-formed response instead of an exception.
"""

import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from langchain_core.language_models import BaseChatModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groundql.config import get_settings
from groundql.core.cache import SmartQueryCache, jsonable_rows
from groundql.core.conversation import ConversationMemory, ConversationStoreError, SessionManager
from groundql.core.intent import IntentClassification, QueryIntent
from groundql.core.query_builder import (
    QueryBuilder,
    QueryBuilderResult,
    QueryBuildError,
    UserContext,
)
from groundql.llm.answer_generator import AnswerGenerationError, AnswerGenerator
from groundql.llm.factory import LLMFactory
from groundql.llm.intent_classifier import IntentClassificationError, IntentClassifier
from groundql.llm.prompts.answer import AnswerMode
from groundql.services.answer_pipeline.execution import (
    QueryExecutionError,
    QueryExecutor,
    SQLAlchemyQueryExecutor,
    substitute_params,
)
from groundql.services.answer_pipeline.formatter import (
    ContextFormattingError,
    format_no_results,
    format_query_results,
    format_user_context,
)
from groundql.services.answer_pipeline.observability import (
    EventEmitter,
    EventSink,
    OperationType,
    PipelineEvent,
)
from groundql.services.answer_pipeline.user_context import (
    SQLAlchemyUserContextProvider,
    UserContextProvider,
    minimal_user_context,
)
from groundql.services.answer_pipeline.validator import validate_answer

logger = logging.getLogger(__name__)

INTENT_SOURCE = "Intent Classification"
PREVIEW_ROWS = 5
HISTORY_TURNS = 10


# -----------------------------
# Results
# -----------------------------


@dataclass
class AnswerResponse:
    """Complete result of answering a question."""

    answer: str
    data: list[dict[str, Any]] = field(default_factory=list)
    sql: str = ""
    confidence: float = 0.0
    sources: list[str] = field(default_factory=list)


class StreamEventType(str, Enum):
    STATUS = "status"
    INTENT = "intent"
    QUERY = "query"
    DATA = "data"
    RESPONSE_START = "response_start"
    CHUNK = "chunk"
    RESPONSE_END = "response_end"
    ERROR = "error"


@dataclass
class StreamEvent:
    """One progress update from a streamed answer."""

    type: StreamEventType
    data: dict[str, Any] | None = None
    error: str | None = None
    chunk: str | None = None

    @classmethod
    def status(cls, stage: str, message: str) -> "StreamEvent":
        return cls(StreamEventType.STATUS, data={"stage": stage, "message": message})

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form, omitting empty fields."""
        payload: dict[str, Any] = {"type": self.type.value}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        if self.chunk is not None:
            payload["chunk"] = self.chunk
        return payload


@dataclass
class _Retrieval:
    rows: list[dict[str, Any]]
    cached: bool


# -----------------------------
# Pipeline
# -----------------------------


class AnswerPipeline:
    """
    Answers questions with data fetched on the asker's behalf.

    Example:
        pipeline = AnswerPipeline(
            classifier=IntentClassifier(llm),
            generator=AnswerGenerator(llm),
            executor=SQLAlchemyQueryExecutor(session_factory),
            cache=SmartQueryCache(),
        )
        response = await pipeline.answer("How many leads this month?", user_id="u1")
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        generator: AnswerGenerator,
        executor: QueryExecutor,
        query_builder: QueryBuilder | None = None,
        cache: SmartQueryCache | None = None,
        user_context_provider: UserContextProvider | None = None,
        memory: ConversationMemory | None = None,
        event_sink: EventSink | None = None,
        history_turns: int = HISTORY_TURNS,
    ):
        """
        Initialize the pipeline.

        Args:
            classifier: Turns questions into intents.
            generator: Produces the natural language answer.
            executor: Runs substituted SQL.
            query_builder: Builds SQL from intents. Uses the default
                schema registry if not provided.
            cache: Result cache; execution always runs when omitted.
            user_context_provider: Resolves the asking user; everyone is a
                plain "user" when omitted.
            memory: Conversation memory for history and turn recording.
            event_sink: Receives one event per stage. Logs when omitted.
            history_turns: How many stored turns to load as history.
        """
        self._classifier = classifier
        self._generator = generator
        self._executor = executor
        self._builder = query_builder or QueryBuilder()
        self._cache = cache
        self._users = user_context_provider
        self._memory = memory
        self._events = EventEmitter(event_sink)
        self._history_turns = history_turns

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        llm: BaseChatModel | None = None,
    ) -> "AnswerPipeline":
        """
        Wire a pipeline from Settings and LLMSettings.

        The database behind ``session_factory`` serves query execution,
        user lookup, conversation memory and operation logs. The cache
        uses Redis when ``redis_url`` is set.

        Args:
            session_factory: Async session factory for the CRM database.
            llm: Chat model shared by classifier and generator.
                Uses LLMFactory.create_from_settings() if not provided.
        """
        # groundql.db imports this package for PipelineEvent
        from groundql.db import SQLAlchemyConversationStore, SQLAlchemyEventSink

        llm = llm or LLMFactory.create_from_settings()
        store = SQLAlchemyConversationStore(session_factory)
        memory = ConversationMemory.from_settings(store, SessionManager.from_settings(store))

        return cls(
            classifier=IntentClassifier.from_settings(llm),
            generator=AnswerGenerator.from_settings(llm),
            executor=SQLAlchemyQueryExecutor(session_factory),
            cache=SmartQueryCache.from_settings(),
            user_context_provider=SQLAlchemyUserContextProvider(session_factory),
            memory=memory,
            event_sink=SQLAlchemyEventSink(session_factory),
            history_turns=get_settings().memory_max_turns,
        )

    @property
    def events(self) -> EventEmitter:
        return self._events

    async def start(self) -> None:
        """Start the cache and session sweeps."""
        if self._cache is not None:
            await self._cache.start()
        if self._memory is not None:
            await self._memory.session_manager.start()

    async def stop(self) -> None:
        """Stop the sweeps and wait for pending events."""
        if self._cache is not None:
            await self._cache.stop()
        if self._memory is not None:
            await self._memory.session_manager.stop()
        await self._events.drain()

    async def answer(
        self,
        question: str,
        user_id: str,
        mode: AnswerMode | str = AnswerMode.QUERY,
        session_id: str | None = None,
    ) -> AnswerResponse:
        """
        Answer a question.

        Args:
            question: The user's natural language question.
            user_id: The asking user's ID.
            mode: QUERY for a precise data answer, COACH for advice.
            session_id: Conversation session to record the turn in.

        Returns:
            AnswerResponse. Failures are reported in ``answer`` with a
            reduced confidence.
        """
        mode = _coerce_mode(mode)

        # Step 1: User context
        user_context = await self._fetch_user_context(user_id)

        # Step 2: Classify intent
        try:
            classification = await self._classify(question, user_id, user_context)
        except IntentClassificationError as e:
            return AnswerResponse(
                answer=(
                    f"I encountered an error understanding your question: {e}. "
                    "Please try rephrasing your question."
                ),
                confidence=0.0,
            )

        intent = classification.intent
        confidence = classification.confidence

        # Step 3: Build SQL
        try:
            built = self._build(intent, user_id, user_context)
        except QueryBuildError:
            return AnswerResponse(
                answer=(
                    "I couldn't generate a query for your question. "
                    f"{classification.explanation}. Please try rephrasing."
                ),
                confidence=confidence * 0.5,
                sources=[INTENT_SOURCE],
            )

        sources = _sources(built)

        # Step 4: Cache or execute
        try:
            retrieval = await self._retrieve(built, user_id)
        except QueryExecutionError:
            return AnswerResponse(
                answer=f"I encountered an error executing the query. The query was: {built.sql[:100]}...",
                sql=built.sql,
                confidence=confidence * 0.7,
                sources=sources,
            )

        rows = retrieval.rows
        if not rows and mode == AnswerMode.QUERY:
            answer = format_no_results(question)
            await self._remember(user_id, question, answer, mode, intent, session_id)
            return AnswerResponse(
                answer=answer,
                sql=built.sql,
                confidence=confidence,
                sources=sources,
            )

        # Step 5: Format context
        context = self._format_context(question, rows, intent, user_context, user_id)

        # Step 6: Generate answer
        history = await self._load_history(user_id, session_id)
        start = time.perf_counter()
        try:
            answer = await self._generator.generate(
                question,
                context,
                mode=mode,
                user_context=user_context,
                history=history,
            )
            answer = validate_answer(answer, context, mode)
            self._emit(
                OperationType.AI_RESPONSE,
                user_id,
                start,
                question=question,
                answer=answer,
                mode=mode.value,
                confidence=confidence,
            )
        except AnswerGenerationError as e:
            logger.error("Answer generation failed: %s", e, exc_info=True)
            self._emit_error("AI_RESPONSE", user_id, start, e)
            answer = context

        # Step 7: Remember the turn
        await self._remember(user_id, question, answer, mode, intent, session_id)

        return AnswerResponse(
            answer=answer,
            data=rows,
            sql=built.sql,
            confidence=confidence,
            sources=sources,
        )

    async def stream(
        self,
        question: str,
        user_id: str,
        mode: AnswerMode | str = AnswerMode.QUERY,
        session_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Answer a question as a stream of progress events.

        Yields status updates for each stage, the classified intent, the
        built query, a data preview, and finally the answer as chunks
        between ``response_start`` and ``response_end``. A failing stage
        before generation yields a single ``error`` event and ends the
        stream.
        """
        mode = _coerce_mode(mode)

        # Step 1: User context
        yield StreamEvent.status("fetching_context", "Loading user context...")
        user_context = await self._fetch_user_context(user_id)

        # Step 2: Classify intent
        yield StreamEvent.status("classifying_intent", "Understanding your question...")
        try:
            classification = await self._classify(question, user_id, user_context)
        except IntentClassificationError as e:
            yield StreamEvent(StreamEventType.ERROR, error=f"Intent classification failed: {e}")
            return

        intent = classification.intent
        yield StreamEvent(
            StreamEventType.INTENT,
            data={
                "category": intent.category.value,
                "tables": list(intent.tables),
                "confidence": classification.confidence,
            },
        )

        # Step 3: Build SQL
        yield StreamEvent.status("building_query", "Building database query...")
        try:
            built = self._build(intent, user_id, user_context)
        except QueryBuildError as e:
            yield StreamEvent(StreamEventType.ERROR, error=f"Query building failed: {e}")
            return

        yield StreamEvent(
            StreamEventType.QUERY,
            data={"sql": built.sql, "affected_tables": list(built.affected_tables)},
        )

        # Step 4: Cache or execute
        yield StreamEvent.status("executing_query", "Querying database...")
        try:
            retrieval = await self._retrieve(built, user_id)
        except QueryExecutionError as e:
            yield StreamEvent(StreamEventType.ERROR, error=f"Data retrieval failed: {e}")
            return

        if retrieval.cached:
            yield StreamEvent.status("cache_hit", "Using cached results")

        rows = retrieval.rows
        yield StreamEvent(
            StreamEventType.DATA,
            data={"row_count": len(rows), "preview": rows[:PREVIEW_ROWS]},
        )

        if not rows and mode == AnswerMode.QUERY:
            answer = format_no_results(question)
            yield StreamEvent(StreamEventType.RESPONSE_START)
            yield StreamEvent(StreamEventType.CHUNK, chunk=answer)
            yield StreamEvent(StreamEventType.RESPONSE_END, data={"full_response": answer})
            await self._remember(user_id, question, answer, mode, intent, session_id)
            return

        # Step 5: Format context
        yield StreamEvent.status("formatting_context", "Preparing response...")
        context = self._format_context(question, rows, intent, user_context, user_id)

        # Step 6: Stream answer
        yield StreamEvent.status("generating_response", "Generating AI response...")
        history = await self._load_history(user_id, session_id)

        yield StreamEvent(StreamEventType.RESPONSE_START)
        parts: list[str] = []
        start = time.perf_counter()
        try:
            async for text in self._generator.astream(
                question,
                context,
                mode=mode,
                user_context=user_context,
                history=history,
            ):
                parts.append(text)
                yield StreamEvent(StreamEventType.CHUNK, chunk=text)
        except AnswerGenerationError as e:
            logger.error("Answer streaming failed: %s", e, exc_info=True)
            self._emit_error("AI_RESPONSE", user_id, start, e)
            yield StreamEvent(StreamEventType.ERROR, error=f"Response generation failed: {e}")
            yield StreamEvent(StreamEventType.RESPONSE_END, data={"full_response": context})
            return

        answer = "".join(parts)
        self._emit(
            OperationType.AI_RESPONSE,
            user_id,
            start,
            question=question,
            answer=answer,
            mode=mode.value,
            confidence=classification.confidence,
        )
        yield StreamEvent(StreamEventType.RESPONSE_END, data={"full_response": answer})

        # Step 7: Remember the turn
        await self._remember(user_id, question, answer, mode, intent, session_id)

    # -------------------------
    # Stages
    # -------------------------

    async def _fetch_user_context(self, user_id: str) -> UserContext:
        start = time.perf_counter()
        if self._users is None:
            self._emit(OperationType.USER_CONTEXT, user_id, start, source="minimal")
            return minimal_user_context(user_id)
        try:
            context = await self._users.fetch(user_id)
        except Exception as e:
            logger.warning(
                "User context lookup failed for %s (%s), using minimal context",
                user_id,
                type(e).__name__,
            )
            self._emit_error("USER_CONTEXT", user_id, start, e)
            return minimal_user_context(user_id)

        self._emit(OperationType.USER_CONTEXT, user_id, start, source="provider", role=context.role)
        return context

    async def _classify(
        self,
        question: str,
        user_id: str,
        user_context: UserContext,
    ) -> IntentClassification:
        start = time.perf_counter()
        try:
            classification = await self._classifier.classify(question, user_context)
        except IntentClassificationError as e:
            logger.error("Intent classification failed: %s", e, exc_info=True)
            self._emit_error("INTENT_CLASSIFICATION", user_id, start, e)
            raise

        self._emit(
            OperationType.INTENT_CLASSIFICATION,
            user_id,
            start,
            question=question,
            intent_category=classification.intent.category.value,
            intent_tables=list(classification.intent.tables),
            confidence=classification.confidence,
        )
        return classification

    def _build(
        self,
        intent: QueryIntent,
        user_id: str,
        user_context: UserContext,
    ) -> QueryBuilderResult:
        start = time.perf_counter()
        try:
            built = self._builder.build_query(intent, user_context)
        except QueryBuildError as e:
            logger.error("Query building failed: %s", e, exc_info=True)
            self._emit_error("QUERY_BUILD", user_id, start, e)
            raise

        for warning in built.warnings:
            logger.warning("Query builder: %s", warning)
        logger.info("Built query for %s: %s", built.affected_tables, built.sql[:200])
        self._emit(
            OperationType.QUERY_BUILD,
            user_id,
            start,
            sql_query=built.sql,
            affected_tables=list(built.affected_tables),
            warnings=list(built.warnings),
        )
        return built

    async def _retrieve(self, built: QueryBuilderResult, user_id: str) -> _Retrieval:
        """
        Read rows from the cache, executing and caching on a miss.

        Raises:
            QueryExecutionError: If execution fails.
        """
        start = time.perf_counter()

        if self._cache is not None:
            cached = await self._cache.get(built.sql, user_id, built.params)
            if cached is not None:
                self._emit(OperationType.CACHE_HIT, user_id, start, sql_query=built.sql)
                self._emit(
                    OperationType.QUERY_EXECUTION,
                    user_id,
                    start,
                    sql_query=built.sql,
                    row_count=len(cached),
                    cached=True,
                )
                return _Retrieval(rows=cached, cached=True)
            self._emit(OperationType.CACHE_MISS, user_id, start, sql_query=built.sql)

        try:
            rows = await self._executor.execute(substitute_params(built.sql, built.params))
        except QueryExecutionError as e:
            logger.error("Query execution failed: %s", e, exc_info=True)
            self._events.emit(
                PipelineEvent(
                    operation=OperationType.QUERY_EXECUTION,
                    success=False,
                    duration_ms=_elapsed_ms(start),
                    user_id=str(user_id),
                    error=str(e),
                    details={"sql_query": built.sql},
                )
            )
            raise

        # Same JSON-native form the cache returns, so hits and misses match
        rows = jsonable_rows(rows)
        if self._cache is not None:
            await self._cache.set(built.sql, user_id, rows, built.params)

        self._emit(
            OperationType.QUERY_EXECUTION,
            user_id,
            start,
            sql_query=built.sql,
            row_count=len(rows),
            cached=False,
        )
        return _Retrieval(rows=rows, cached=False)

    def _format_context(
        self,
        question: str,
        rows: list[dict[str, Any]],
        intent: QueryIntent,
        user_context: UserContext,
        user_id: str,
    ) -> str:
        start = time.perf_counter()
        try:
            context = f"{format_user_context(user_context)}\n\n{format_query_results(rows, question, intent)}"
        except ContextFormattingError as e:
            logger.warning("Context formatting failed, using raw rows: %s", e)
            self._emit_error("CONTEXT_FORMAT", user_id, start, e)
            return f"Query: {question}\nResults: {json.dumps(rows[:10], default=str)}"

        self._emit(OperationType.CONTEXT_FORMAT, user_id, start, row_count=len(rows))
        return context

    # -------------------------
    # Memory
    # -------------------------

    async def _load_history(self, user_id: str, session_id: str | None) -> list[dict] | None:
        if self._memory is None:
            return None
        try:
            return await self._memory.load_history(user_id, session_id, limit=self._history_turns)
        except ConversationStoreError as e:
            logger.warning("Could not load conversation history: %s", e)
            return None

    async def _remember(
        self,
        user_id: str,
        question: str,
        answer: str,
        mode: AnswerMode,
        intent: QueryIntent,
        session_id: str | None,
    ) -> None:
        if self._memory is None:
            return
        try:
            await self._memory.save_turn(
                user_id,
                question,
                response=answer,
                mode=mode.value,
                intent=intent.snapshot(),
                session_id=session_id,
            )
        except ConversationStoreError as e:
            logger.warning("Could not save conversation turn: %s", e)

    # -------------------------
    # Events
    # -------------------------

    def _emit(self, operation: OperationType, user_id: str, start: float, **details: Any) -> None:
        self._events.emit(
            PipelineEvent(
                operation=operation,
                success=True,
                duration_ms=_elapsed_ms(start),
                user_id=str(user_id),
                details=details,
            )
        )

    def _emit_error(self, stage: str, user_id: str, start: float, error: Exception) -> None:
        self._events.emit(
            PipelineEvent(
                operation=OperationType.ERROR,
                success=False,
                duration_ms=_elapsed_ms(start),
                user_id=str(user_id),
                error=str(error),
                details={"stage": stage, "error_type": type(error).__name__},
            )
        )


# -------------------------
# Helpers
# -------------------------


def _coerce_mode(mode: AnswerMode | str) -> AnswerMode:
    if isinstance(mode, AnswerMode):
        return mode
    try:
        return AnswerMode(str(mode).strip().upper())
    except ValueError:
        logger.warning("Unknown answer mode %r, using QUERY", mode)
        return AnswerMode.QUERY


def _sources(built: QueryBuilderResult) -> list[str]:
    """Intent Classification then the touched tables, without duplicates."""
    return list(dict.fromkeys([INTENT_SOURCE, *built.affected_tables]))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
