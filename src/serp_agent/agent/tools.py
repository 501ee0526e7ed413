"""Retrieval tools exposed to the STANDARD tool-calling loop.

Tool calls are a closed tagged union discriminated by ``name``; the toolbox
dispatches them with an exhaustive ``match``.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union, assert_never

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import Runnable
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from serp_agent.agent.clusters import ClusterDetector, normalize_cluster_label
from serp_agent.agent.guardrails import extract_text, with_guardrails
from serp_agent.agent.intent import IntentFilter, document_intent_item
from serp_agent.agent.prompts import (
    CONTENT_TYPE_PROMPT,
    CONTENT_TYPE_SYSTEM_PROMPT,
    INTENT_DETECTION,
)
from serp_agent.agent.registry import ToolContext, ToolRegistry, ToolSpec
from serp_agent.config import RetrievalConfig
from serp_agent.errors import StoreError
from serp_agent.retrieval.store import DocumentQuery, SerpDocumentStore
from serp_agent.types import SearchIntent, SerpDocument

logger = structlog.get_logger(__name__)

SERP_FEATURE_SAMPLE = 10
CLUSTER_DATA_SAMPLE = 15
CONTENT_EXCERPT_CHARS = 1000
RAW_RESPONSE_PREVIEW = 200


class SearchByQueryArgs(BaseModel):
    search_query: str = Field(min_length=1, description="The search query to find relevant SEO data")
    limit: int | None = Field(default=None, ge=1, le=100, description="Maximum number of results (default 10)")


class GetTopPerformersArgs(BaseModel):
    cluster: str | None = Field(default=None, description="Optional: filter by cluster name")
    query: str | None = Field(default=None, description="Optional: filter by search query or topic")
    limit: int | None = Field(default=None, ge=1, le=100, description="Maximum number of results (default 10)")


class GetSerpFeaturesArgs(BaseModel):
    cluster: str | None = Field(default=None, description="Optional: filter by cluster name")
    query: str | None = Field(default=None, description="Optional: filter by search query or topic")
    feature: str | None = Field(
        default=None,
        description="Optional: a specific SERP feature, e.g. 'video', 'peopleAlsoAsk', 'answerBox'",
    )
    limit: int | None = Field(default=None, ge=1, le=100, description="Maximum number of results (default 20)")


class GetClusterDataArgs(BaseModel):
    cluster: str = Field(min_length=1, description="The cluster name to get data for")
    limit: int | None = Field(default=None, ge=1, le=200, description="Maximum number of results (default 50)")


class AnalyzeContentTypesArgs(BaseModel):
    cluster: str | None = Field(default=None, description="Optional: filter by cluster name")
    query: str | None = Field(default=None, description="Optional: filter by search query or topic")
    intent: str | None = Field(
        default=None,
        description="Optional: search intent (informational, navigational, transactional)",
    )
    position_threshold: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="Only analyze content ranking at or above this position (default 10)",
    )


class SearchByQueryCall(BaseModel):
    name: Literal["search_by_query"]
    id: str = ""
    args: SearchByQueryArgs


class GetTopPerformersCall(BaseModel):
    name: Literal["get_top_performers"]
    id: str = ""
    args: GetTopPerformersArgs


class GetSerpFeaturesCall(BaseModel):
    name: Literal["get_serp_features"]
    id: str = ""
    args: GetSerpFeaturesArgs


class GetClusterDataCall(BaseModel):
    name: Literal["get_cluster_data"]
    id: str = ""
    args: GetClusterDataArgs


class AnalyzeContentTypesCall(BaseModel):
    name: Literal["analyze_content_types"]
    id: str = ""
    args: AnalyzeContentTypesArgs


ToolCall = Annotated[
    Union[
        SearchByQueryCall,
        GetTopPerformersCall,
        GetSerpFeaturesCall,
        GetClusterDataCall,
        AnalyzeContentTypesCall,
    ],
    Field(discriminator="name"),
]
_TOOL_CALL_ADAPTER: TypeAdapter[ToolCall] = TypeAdapter(ToolCall)


def parse_tool_call(raw_call: Mapping[str, Any]) -> ToolCall:
    """Validate a LangChain tool-call dict into its typed variant."""
    return _TOOL_CALL_ADAPTER.validate_python(
        {
            "name": raw_call.get("name"),
            "id": raw_call.get("id") or "",
            "args": raw_call.get("args") or {},
        }
    )


TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="search_by_query",
        description=(
            "Search SEO documents by semantic similarity to a search query. "
            "Use this for general questions."
        ),
        args_schema=SearchByQueryArgs,
        tags=["retrieval", "vector"],
    ),
    ToolSpec(
        name="get_top_performers",
        description=(
            "Get top-ranking content (positions 1-3) for a cluster or query. Use this when "
            "the user asks about 'best performing' or 'top results'."
        ),
        args_schema=GetTopPerformersArgs,
        tags=["retrieval"],
    ),
    ToolSpec(
        name="get_serp_features",
        description=(
            "Get documents that carry SERP features (videos, PAA, answer box, ...) and the "
            "frequency of each feature for a cluster or query."
        ),
        args_schema=GetSerpFeaturesArgs,
        tags=["retrieval", "aggregation"],
    ),
    ToolSpec(
        name="get_cluster_data",
        description="Get the data for one cluster including domains, positions and aggregate stats.",
        args_schema=GetClusterDataArgs,
        tags=["retrieval", "aggregation"],
    ),
    ToolSpec(
        name="analyze_content_types",
        description=(
            "Analyze which TYPES of content rank best (blog posts, product pages, guides, "
            "listicles, videos). Use this when the user asks about content type, format or "
            "structure. Can filter by cluster or search query."
        ),
        args_schema=AnalyzeContentTypesArgs,
        tags=["retrieval", "llm"],
    ),
)


class ContentTypeLabel(BaseModel):
    content_type: str
    position: int | None = None
    domain: str = ""


class ContentTypeAnalysis(BaseModel):
    content_type_analysis: list[ContentTypeLabel] = Field(default_factory=list)


class SerpToolbox:
    """Implements the five retrieval tools against a document store."""

    def __init__(
        self,
        *,
        store: SerpDocumentStore,
        model: Runnable,
        intent_filter: IntentFilter,
        cluster_detector: ClusterDetector,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.store = store
        self.model = with_guardrails(model)
        self.intent_filter = intent_filter
        self.cluster_detector = cluster_detector
        self.config = config or RetrievalConfig()

    def run(self, raw_call: Mapping[str, Any], context: ToolContext) -> str:
        return self.dispatch(parse_tool_call(raw_call), context)

    def dispatch(self, call: ToolCall, context: ToolContext | None = None) -> str:
        context = context or ToolContext()
        match call:
            case SearchByQueryCall(args=args):
                result = self.search_by_query(args)
            case GetTopPerformersCall(args=args):
                result = self.get_top_performers(args)
            case GetSerpFeaturesCall(args=args):
                result = self.get_serp_features(args)
            case GetClusterDataCall(args=args):
                result = self.get_cluster_data(args)
            case AnalyzeContentTypesCall(args=args):
                result = self.analyze_content_types(args, context)
            case _:
                assert_never(call)
        return json.dumps(result, default=str)

    def search_by_query(self, args: SearchByQueryArgs) -> list[dict[str, Any]]:
        limit = args.limit or self.config.search_limit
        hint = self.cluster_detector.extract_cluster_hint(args.search_query)
        if hint:
            try:
                documents = self.store.query_documents(
                    DocumentQuery(cluster_eq=hint, order_by="position", limit=limit)
                )
            except StoreError as exc:
                logger.warning("tool.cluster_lookup_failed", cluster=hint, error=str(exc))
                documents = []
            if documents:
                return [_search_row(document) for document in documents]

        hits = self.store.similarity_search_with_score(args.search_query, limit)
        return [_search_row(hit.document) for hit in hits]

    def get_top_performers(self, args: GetTopPerformersArgs) -> Any:
        limit = args.limit or self.config.top_performers_limit
        cluster = self._resolve_cluster(args.cluster, args.query)

        documents: list[SerpDocument] = []
        if cluster:
            documents = self.store.query_documents(
                DocumentQuery(
                    cluster_like=cluster,
                    position_min=1,
                    position_max=3,
                    order_by="position",
                    limit=limit,
                )
            )
        if not documents and args.query and args.query.strip():
            documents = self.store.query_documents(
                DocumentQuery(
                    query_like=args.query.strip(),
                    position_min=1,
                    position_max=3,
                    order_by="position",
                    limit=limit,
                )
            )
        if not documents:
            return {"warning": "No top-ranking snippets found.", "results": []}
        return [{"content": document.content, **document.metadata} for document in documents]

    def get_serp_features(self, args: GetSerpFeaturesArgs) -> dict[str, Any]:
        limit = args.limit or self.config.serp_features_limit
        cluster = self._resolve_cluster(args.cluster, args.query)
        documents = self.store.query_documents(
            DocumentQuery(
                cluster_like=cluster or None,
                query_like=args.query or None,
                require_serp_features=True,
                limit=limit,
            )
        )
        if args.feature:
            needle = args.feature.lower()
            documents = [
                document
                for document in documents
                if any(needle in feature.lower() for feature in document.serp_features)
            ]

        frequency: Counter[str] = Counter()
        for document in documents:
            frequency.update(document.serp_features)
        return {
            "feature_frequency": dict(frequency),
            "sample_results": [
                {
                    "content": document.content,
                    "serp_features": document.serp_features,
                    "query": document.query,
                    "cluster": document.cluster,
                    "position": document.position,
                }
                for document in documents[:SERP_FEATURE_SAMPLE]
            ],
        }

    def get_cluster_data(self, args: GetClusterDataArgs) -> dict[str, Any]:
        """Rows and aggregates for a cluster.

        Aggregates cover only the fetched sample; ``sample_limited`` is true
        when the sample may be truncated by ``limit``.
        """
        limit = args.limit or self.config.cluster_data_limit
        cluster = normalize_cluster_label(args.cluster) or args.cluster
        documents = self.store.query_documents(
            DocumentQuery(cluster_like=cluster, order_by="position", limit=limit)
        )
        domains = list(dict.fromkeys(document.domain for document in documents))
        positions = [document.position for document in documents if document.position is not None]
        return {
            "requested_cluster": args.cluster,
            "total_results": len(documents),
            "unique_domains": domains,
            "avg_position": sum(positions) / len(positions) if positions else None,
            "sample_limited": len(documents) >= limit,
            "sample_data": [document.metadata for document in documents[:CLUSTER_DATA_SAMPLE]],
        }

    def analyze_content_types(
        self,
        args: AnalyzeContentTypesArgs,
        context: ToolContext | None = None,
    ) -> dict[str, Any]:
        context = context or ToolContext()
        threshold = args.position_threshold or self.config.position_threshold
        cluster = normalize_cluster_label(args.cluster) or self._resolve_cluster(None, args.query)
        intent = args.intent or (context.target_intent.value if context.target_intent else None)

        documents = self.store.query_documents(
            DocumentQuery(
                cluster_like=cluster or None,
                query_like=args.query or None,
                position_max=threshold,
                order_by="position",
                limit=self.config.content_analysis_limit,
            )
        )
        if not documents:
            return {
                "error": "No data found for analysis",
                "filters_used": {
                    "cluster": cluster,
                    "query": args.query,
                    "position_threshold": threshold,
                },
            }

        resolved_intent = SearchIntent.UNKNOWN
        intent_filter_applied = False
        filtered_out = 0
        if intent:
            filtered = self.intent_filter.apply_intent_filter_to_items(
                documents,
                document_intent_item,
                query=args.query or context.user_query,
                provided_intent=intent,
            )
            resolved_intent = filtered.resolved_intent.intent
            intent_filter_applied = filtered.intent_filter_applied
            filtered_out = filtered.filtered_out_count
            documents = filtered.filtered_items
            if not documents:
                return {
                    "error": "No results match the specified intent",
                    "intent": resolved_intent.value,
                    "intent_filter_applied": intent_filter_applied,
                    "filtered_out": filtered_out,
                    "filters_used": {
                        "cluster": args.cluster,
                        "query": args.query,
                        "intent": intent,
                        "position_threshold": threshold,
                    },
                }

        intent_instructions = ""
        if intent_filter_applied:
            intent_instructions = (
                f"{INTENT_DETECTION}\nDetected intent: {resolved_intent.value}\n"
                "Only include results that match this intent."
            )
        response = self.model.invoke(
            [
                SystemMessage(content=CONTENT_TYPE_SYSTEM_PROMPT),
                HumanMessage(
                    content=CONTENT_TYPE_PROMPT.format(
                        intent_instructions=intent_instructions,
                        results=_format_results(documents),
                    )
                ),
            ]
        )
        raw = extract_text(response)
        try:
            analysis = _parse_content_analysis(raw)
        except ValueError as exc:
            logger.warning("tool.content_analysis_unparsed", error=str(exc))
            return {
                "error": "Failed to parse content analysis",
                "raw_response": raw[:RAW_RESPONSE_PREVIEW],
            }

        labels = analysis.content_type_analysis
        return {
            "summary": f"Analyzed {len(labels)} top results",
            "content_type_breakdown": content_type_breakdown(labels),
            "intent": resolved_intent.value,
            "intent_filter_applied": intent_filter_applied,
            "filtered_out": filtered_out,
        }

    def _resolve_cluster(self, cluster: str | None, query: str | None) -> str:
        normalized = normalize_cluster_label(cluster)
        if normalized:
            return normalized
        if query:
            return self.cluster_detector.detect_cluster_from_query(query)
        return ""


def content_type_breakdown(labels: list[ContentTypeLabel]) -> list[dict[str, Any]]:
    """Per content type: count, share of total, mean position, top-3 count and one example."""
    total = len(labels)
    grouped: dict[str, list[ContentTypeLabel]] = {}
    for label in labels:
        grouped.setdefault(label.content_type, []).append(label)

    breakdown = []
    for content_type, members in grouped.items():
        positions = [member.position for member in members if member.position is not None]
        first = members[0]
        breakdown.append(
            {
                "content_type": content_type,
                "count": len(members),
                "percentage": round(len(members) / total * 100),
                "avg_position": round(sum(positions) / len(positions), 1) if positions else None,
                "top_3_count": sum(1 for position in positions if position <= 3),
                "examples": [f"{first.domain} (pos {first.position})"],
            }
        )
    breakdown.sort(key=lambda item: item["count"], reverse=True)
    return breakdown


def build_tool_registry(toolbox: SerpToolbox) -> ToolRegistry:
    registry = ToolRegistry(toolbox)
    for spec in TOOL_SPECS:
        registry.register(spec)
    return registry


def _search_row(document: SerpDocument) -> dict[str, Any]:
    return {
        "content": document.content,
        "position": document.position,
        "domain": document.domain,
        "cluster": document.cluster,
        "serp_features": document.serp_features,
        "date": document.iso_date,
    }


def _format_results(documents: list[SerpDocument]) -> str:
    return "\n\n".join(
        f"{number}. {document.domain} (pos {document.position}):\n"
        f"{document.content[:CONTENT_EXCERPT_CHARS]}"
        for number, document in enumerate(documents, start=1)
    )


def _parse_content_analysis(raw: str) -> ContentTypeAnalysis:
    text = raw.strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start == -1 or end <= start:
        raise ValueError("no JSON object in model response")
    try:
        return ContentTypeAnalysis.model_validate_json(text[start:end])
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
