"""Query orchestrator: routes each question to one path and records the run."""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from typing import Any, assert_never

import structlog

from serp_agent.agent.clusters import ClusterDetector
from serp_agent.agent.intent import IntentFilter
from serp_agent.agent.paths import (
    ComparisonPathExecutor,
    StandardPathExecutor,
    StrategyPathExecutor,
)
from serp_agent.agent.registry import ToolRegistry
from serp_agent.agent.router import QueryRouter
from serp_agent.agent.timeranges import TimeRangeDetector
from serp_agent.agent.tools import SerpToolbox, build_tool_registry
from serp_agent.config import AgentConfig, GuardrailConfig, RetrievalConfig
from serp_agent.obs.tracing import Timer, TraceStore
from serp_agent.retrieval.store import SerpDocumentStore
from serp_agent.types import (
    ConversationMessage,
    OrchestrationState,
    QueryResponse,
    QueryRoute,
)

logger = structlog.get_logger(__name__)


class SerpQueryPlanner:
    """High-level orchestrator over the router and the three path executors.

    ``model`` answers questions and drives tool calls; ``fast_model`` handles
    classification and extraction calls and defaults to ``model``. Both are
    injected, and a planner instance holds no per-run state, so concurrent
    ``answer`` calls only share the model and store clients.
    """

    def __init__(
        self,
        *,
        model: Any,
        store: SerpDocumentStore,
        fast_model: Any | None = None,
        trace_store: TraceStore | None = None,
        agent_config: AgentConfig | None = None,
        retrieval_config: RetrievalConfig | None = None,
        guardrail_config: GuardrailConfig | None = None,
    ) -> None:
        self.store = store
        self.trace_store = trace_store or TraceStore()
        self.agent_config = agent_config or AgentConfig()
        self.retrieval_config = retrieval_config or RetrievalConfig()
        retries = (guardrail_config or GuardrailConfig()).max_retries
        fast = fast_model or model

        self.router = QueryRouter(fast, max_retries=retries)
        self.intent_filter = IntentFilter(fast, max_retries=retries)
        self.cluster_detector = ClusterDetector(
            fast,
            store,
            max_retries=retries,
            min_similarity_score=self.retrieval_config.cluster_similarity_threshold,
        )
        self.time_range_detector = TimeRangeDetector(fast, store, max_retries=retries)
        self.tool_registry: ToolRegistry = build_tool_registry(
            SerpToolbox(
                store=store,
                model=model,
                intent_filter=self.intent_filter,
                cluster_detector=self.cluster_detector,
                config=self.retrieval_config,
            )
        )

        self.standard = StandardPathExecutor(
            model=model,
            tool_registry=self.tool_registry,
            intent_filter=self.intent_filter,
            cluster_detector=self.cluster_detector,
            config=self.agent_config,
        )
        self.strategy = StrategyPathExecutor(
            model=model,
            store=store,
            intent_filter=self.intent_filter,
            cluster_detector=self.cluster_detector,
            config=self.retrieval_config,
        )
        self.comparison = ComparisonPathExecutor(
            model=model,
            store=store,
            cluster_detector=self.cluster_detector,
            time_range_detector=self.time_range_detector,
            config=self.retrieval_config,
        )

    def answer(
        self,
        query: str,
        chat_history: Sequence[ConversationMessage | Mapping[str, Any]] | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> QueryResponse:
        """Run one orchestration and persist its trace.

        Raises:
            ValueError: the query is empty or whitespace.
            GuardrailError, ToolLoopExhaustedError, RunCancelledError, StoreError:
                propagated from the selected path.
        """
        if not query or not query.strip():
            raise ValueError("Query is required")

        state = OrchestrationState(
            query=query.strip(),
            history=[_coerce_message(message) for message in chat_history or []],
            cancel_event=cancel_event,
        )
        error: str | None = None
        timer = Timer()
        try:
            with timer:
                state.raise_if_cancelled()
                state.decision = self.router.classify(state.query, state.history)
                self._run_path(state.decision.intent, state)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error("planner.run_failed", error=error)
            raise
        finally:
            record = self.trace_store.create_record(
                query=state.query,
                route=state.decision.intent.value if state.decision else "",
                response_type=state.response_type,
                cluster=state.cluster_name,
                tool_traces=state.tool_traces,
                latency_ms=timer.elapsed_ms,
                error=error,
            )

        logger.info(
            "planner.run_completed",
            trace_id=record.trace_id,
            route=record.route,
            latency_ms=round(record.latency_ms, 1),
            latency_target_met=record.latency_ms <= self.agent_config.target_latency_seconds * 1000.0,
        )
        return QueryResponse(
            type=state.response_type,
            answer=state.answer,
            cluster=state.cluster_name or None,
            documents=state.documents,
            intent=state.decision.intent,
            explanation=state.decision.explanation,
            search_intent=state.search_intent,
            trace_id=record.trace_id,
        )

    def _run_path(self, route: QueryRoute, state: OrchestrationState) -> None:
        match route:
            case QueryRoute.STANDARD:
                self.standard.run(state)
            case QueryRoute.STRATEGY:
                self.strategy.run(state)
            case QueryRoute.COMPARISON:
                self.comparison.run(state)
            case _:
                assert_never(route)


def _coerce_message(message: ConversationMessage | Mapping[str, Any]) -> ConversationMessage:
    if isinstance(message, ConversationMessage):
        return message
    role = "user" if message.get("role") == "user" else "assistant"
    return ConversationMessage(role=role, content=str(message.get("content") or ""))
