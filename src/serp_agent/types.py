"""Shared domain models."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Literal

from langchain_core.messages import BaseMessage

from serp_agent.errors import RunCancelledError


class QueryRoute(str, Enum):
    """Orchestration-level classification of the current chat query."""

    STANDARD = "STANDARD"
    COMPARISON = "COMPARISON"
    STRATEGY = "STRATEGY"


class SearchIntent(str, Enum):
    """Inferred goal behind a search query."""

    INFORMATIONAL = "informational"
    NAVIGATIONAL = "navigational"
    TRANSACTIONAL = "transactional"
    UNKNOWN = "unknown"


Confidence = Literal["low", "medium", "high"]


@dataclass(slots=True)
class ConversationMessage:
    """One prior chat turn supplied by the caller."""

    role: Literal["user", "assistant"]
    content: str


@dataclass(slots=True)
class SerpDocument:
    """A SERP snapshot text blob with its ingestion metadata."""

    content: str
    metadata: dict[str, Any]
    doc_id: str = ""

    @property
    def cluster(self) -> str | None:
        return self.metadata.get("cluster")

    @property
    def query(self) -> str:
        return str(self.metadata.get("query") or "")

    @property
    def domain(self) -> str:
        return str(self.metadata.get("domain") or "")

    @property
    def position(self) -> int | None:
        value = self.metadata.get("position")
        if isinstance(value, bool) or value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def iso_date(self) -> str:
        return str(self.metadata.get("iso_date") or "")

    @property
    def serp_features(self) -> list[str]:
        return list(self.metadata.get("serp_features") or [])

    @property
    def categories(self) -> list[str]:
        return list(self.metadata.get("categories") or [])

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "metadata": dict(self.metadata)}


@dataclass(slots=True)
class ScoredDocument:
    """A vector-similarity hit."""

    document: SerpDocument
    score: float


@dataclass(slots=True)
class ResolvedIntent:
    intent: SearchIntent
    confidence: Confidence


@dataclass(slots=True)
class RouterDecision:
    intent: QueryRoute
    explanation: str


@dataclass(slots=True)
class TimeRange:
    start: date
    end: date

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(slots=True)
class TimeRanges:
    """The two periods compared by a COMPARISON run."""

    earlier: TimeRange
    later: TimeRange


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    tool_call_id: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class OrchestrationState:
    """Mutable record threaded through one run. Never shared across runs."""

    query: str
    history: list[ConversationMessage] = field(default_factory=list)
    decision: RouterDecision | None = None
    messages: list[BaseMessage] = field(default_factory=list)
    documents: list[SerpDocument] = field(default_factory=list)
    cluster_name: str = ""
    time_ranges: TimeRanges | None = None
    search_intent: SearchIntent | None = None
    answer: str = ""
    response_type: str = ""
    tool_traces: list[ToolTrace] = field(default_factory=list)
    cancel_event: threading.Event | None = None

    def raise_if_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelledError("Run cancelled by caller.")


@dataclass(slots=True)
class QueryResponse:
    """Uniform envelope returned by every path."""

    type: str
    answer: str
    cluster: str | None
    documents: list[SerpDocument]
    intent: QueryRoute | None
    explanation: str
    search_intent: SearchIntent | None = None
    trace_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "answer": self.answer,
            "cluster": self.cluster,
            "documents": [document.to_dict() for document in self.documents],
            "intent": self.intent.value if self.intent else None,
            "explanation": self.explanation,
            "search_intent": self.search_intent.value if self.search_intent else None,
            "trace_id": self.trace_id,
        }
