"""Path executors: the tool-calling loop, the strategy aggregator and the temporal comparator.

Each executor fills in an ``OrchestrationState`` owned by a single run.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_core.runnables import Runnable

from serp_agent.agent.analysis import (
    compute_cluster_stats,
    extract_common_headers,
    format_competitive_landscape,
    format_sample_summary,
    format_serp_feature_stats,
    format_temporal_data,
    top_items,
)
from serp_agent.agent.clusters import ClusterDetector
from serp_agent.agent.guardrails import extract_text, with_guardrails
from serp_agent.agent.intent import IntentFilter, document_intent_item, intent_context
from serp_agent.agent.prompts import (
    COMPARISON_SYSTEM_PROMPT,
    STANDARD_AGENT_PROMPT,
    STRATEGY_SYSTEM_PROMPT,
)
from serp_agent.agent.registry import ToolContext, ToolRegistry
from serp_agent.agent.timeranges import TimeRangeDetector
from serp_agent.config import AgentConfig, RetrievalConfig
from serp_agent.errors import ToolLoopExhaustedError
from serp_agent.retrieval.store import DocumentQuery, SerpDocumentStore
from serp_agent.types import ConversationMessage, OrchestrationState, SerpDocument

logger = structlog.get_logger(__name__)

DEFAULT_STRATEGY_CLUSTER = "General"


def history_messages(history: Sequence[ConversationMessage]) -> list[BaseMessage]:
    return [
        HumanMessage(content=message.content)
        if message.role == "user"
        else AIMessage(content=message.content)
        for message in history
    ]


class StandardPathExecutor:
    """Bounded tool-calling loop.

    Every tool call in a model turn is answered with exactly one
    ``ToolMessage`` carrying its id, in the order issued, before the model is
    invoked again. The loop ends on the first response without tool calls.
    """

    def __init__(
        self,
        *,
        model: Any,
        tool_registry: ToolRegistry,
        intent_filter: IntentFilter,
        cluster_detector: ClusterDetector,
        config: AgentConfig | None = None,
    ) -> None:
        self.tool_registry = tool_registry
        self.intent_filter = intent_filter
        self.cluster_detector = cluster_detector
        self.config = config or AgentConfig()
        self.model: Runnable = with_guardrails(
            model.bind_tools(tool_registry.as_langchain_tools())
        )

    def run(self, state: OrchestrationState) -> None:
        state.raise_if_cancelled()
        state.cluster_name = self.cluster_detector.detect_cluster_from_query(
            state.query, state.history
        )
        state.raise_if_cancelled()
        target_intent = self.intent_filter.extract_target_intent(state.query, state.history)
        state.search_intent = target_intent

        system_prompt = STANDARD_AGENT_PROMPT.format(
            intent_context=intent_context(target_intent) if target_intent else ""
        )
        state.messages = [
            SystemMessage(content=system_prompt),
            *history_messages(state.history),
            HumanMessage(content=f"Current question: {state.query}"),
        ]
        context = ToolContext(user_query=state.query, target_intent=target_intent)

        for iteration in range(1, self.config.max_iterations + 1):
            state.raise_if_cancelled()
            response = self.model.invoke(state.messages)
            state.messages.append(response)

            tool_calls = list(getattr(response, "tool_calls", None) or [])
            if not tool_calls:
                state.answer = extract_text(response)
                state.response_type = "standard"
                logger.info("standard.completed", iterations=iteration, tools=len(state.tool_traces))
                return

            state.raise_if_cancelled()
            logger.info(
                "standard.tool_batch",
                iteration=iteration,
                tools=[call.get("name") for call in tool_calls],
            )
            state.messages.extend(self._execute_tool_calls(tool_calls, context, state))

        logger.error("standard.loop_exhausted", iterations=self.config.max_iterations)
        raise ToolLoopExhaustedError(self.config.max_iterations)

    def _execute_tool_calls(
        self,
        tool_calls: list[dict[str, Any]],
        context: ToolContext,
        state: OrchestrationState,
    ) -> list[ToolMessage]:
        def _run(call: dict[str, Any]) -> ToolMessage:
            output = self.tool_registry.execute(call, context, observer=state.tool_traces.append)
            return ToolMessage(
                content=output,
                tool_call_id=str(call.get("id") or ""),
                name=str(call.get("name") or ""),
            )

        if self.config.parallel_tool_calls and len(tool_calls) > 1:
            with ThreadPoolExecutor(max_workers=len(tool_calls)) as pool:
                return list(pool.map(_run, tool_calls))
        return [_run(call) for call in tool_calls]


class StrategyPathExecutor:
    """Cluster aggregation followed by one strategy-writing model call."""

    def __init__(
        self,
        *,
        model: Runnable,
        store: SerpDocumentStore,
        intent_filter: IntentFilter,
        cluster_detector: ClusterDetector,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.model = with_guardrails(model)
        self.store = store
        self.intent_filter = intent_filter
        self.cluster_detector = cluster_detector
        self.config = config or RetrievalConfig()
        self.prompt = ChatPromptTemplate.from_messages(
            [
                ("system", STRATEGY_SYSTEM_PROMPT),
                MessagesPlaceholder(variable_name="chat_history", optional=True),
                ("human", "{query}"),
            ]
        )

    def run(self, state: OrchestrationState) -> None:
        state.raise_if_cancelled()
        cluster = (
            self.cluster_detector.detect_cluster_from_query(state.query, state.history)
            or DEFAULT_STRATEGY_CLUSTER
        )
        state.cluster_name = cluster

        state.raise_if_cancelled()
        documents = self.store.query_documents(
            DocumentQuery(
                cluster_eq=cluster,
                order_by="iso_date",
                descending=True,
                limit=self.config.strategy_document_limit,
            )
        )
        logger.info("strategy.cluster_loaded", cluster=cluster, documents=len(documents))

        state.raise_if_cancelled()
        filtered = self.intent_filter.apply_intent_filter_to_items(
            documents, document_intent_item, query=state.query
        )
        kept = filtered.filtered_items
        state.search_intent = filtered.resolved_intent.intent
        state.documents = kept

        stats = compute_cluster_stats(kept)
        messages = self.prompt.format_messages(
            cluster_name=cluster,
            intent_context=(
                intent_context(filtered.resolved_intent.intent)
                if filtered.intent_filter_applied
                else ""
            ),
            sample_summary=format_sample_summary(stats),
            dominant_path=", ".join(top_items(stats.category_paths, 3)) or "/",
            top_serp_features=format_serp_feature_stats(stats.serp_feature_frequency),
            top_headers=extract_common_headers(kept[:10]),
            competitive_landscape=format_competitive_landscape(kept[:5]),
            chat_history=history_messages(state.history),
            query=state.query,
        )

        state.raise_if_cancelled()
        response = self.model.invoke(messages)
        state.answer = extract_text(response)
        state.response_type = "strategy"


class ComparisonPathExecutor:
    """Two-period retrieval over the topic's queries followed by one comparison call."""

    def __init__(
        self,
        *,
        model: Runnable,
        store: SerpDocumentStore,
        cluster_detector: ClusterDetector,
        time_range_detector: TimeRangeDetector,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.model = with_guardrails(model)
        self.store = store
        self.cluster_detector = cluster_detector
        self.time_range_detector = time_range_detector
        self.config = config or RetrievalConfig()
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", COMPARISON_SYSTEM_PROMPT), ("human", "{query}")]
        )

    def run(self, state: OrchestrationState) -> None:
        state.raise_if_cancelled()
        ranges = self.time_range_detector.detect_time_ranges(state.query)
        state.time_ranges = ranges

        state.raise_if_cancelled()
        state.cluster_name = self.cluster_detector.detect_cluster_from_query(
            state.query, state.history
        )

        state.raise_if_cancelled()
        hits = self.store.similarity_search_with_score(state.query, self.config.comparison_topic_k)
        topic_queries = tuple(
            dict.fromkeys(hit.document.query for hit in hits if hit.document.query)
        )

        state.raise_if_cancelled()
        earlier = self._period_documents(topic_queries, ranges.earlier.start, ranges.earlier.end)
        later = self._period_documents(topic_queries, ranges.later.start, ranges.later.end)
        logger.info(
            "comparison.periods",
            queries=list(topic_queries),
            earlier=len(earlier),
            later=len(later),
        )
        state.documents = [*earlier, *later]

        messages = self.prompt.format_messages(
            earlier_start=ranges.earlier.start.isoformat(),
            earlier_end=ranges.earlier.end.isoformat(),
            later_start=ranges.later.start.isoformat(),
            later_end=ranges.later.end.isoformat(),
            earlier_data=format_temporal_data(earlier, "Earlier Period"),
            later_data=format_temporal_data(later, "Later Period"),
            query=state.query,
        )

        state.raise_if_cancelled()
        response = self.model.invoke(messages)
        state.answer = extract_text(response)
        state.response_type = "comparison"

    def _period_documents(
        self, queries: tuple[str, ...], start: date, end: date
    ) -> list[SerpDocument]:
        return self.store.query_documents(
            DocumentQuery(
                query_in=queries,
                date_from=start,
                date_to=end,
                order_by="position",
                limit=self.config.comparison_period_limit,
            )
        )
