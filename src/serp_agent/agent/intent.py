"""Search-intent resolution and intent-based relevance filtering."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

import structlog
from langchain_core.runnables import Runnable
from pydantic import BaseModel, Field

from serp_agent.agent.guardrails import StructuredCompletion
from serp_agent.agent.prompts import (
    INTENT_DETECTION,
    INTENT_FILTER_CONTEXT,
    RELEVANCE_FILTER_PROMPT,
    SEARCH_INTENT_PROMPT,
    TARGET_INTENT_PROMPT,
    render_history,
)
from serp_agent.types import ConversationMessage, ResolvedIntent, SearchIntent, SerpDocument

logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT")

SNIPPET_CHARS = 150
_UNRESOLVED = ResolvedIntent(intent=SearchIntent.UNKNOWN, confidence="low")


class SearchIntentClassification(BaseModel):
    intent: SearchIntent
    confidence: Literal["low", "medium", "high"]
    rationale: str | None = None


class TargetIntentExtraction(BaseModel):
    target_intent: Literal["informational", "navigational", "transactional", "null"] = Field(
        description="The intent the user explicitly wants to filter by, or 'null' if none."
    )


class RelevanceSelection(BaseModel):
    keep: list[int] = Field(default_factory=list, description="1-based indices to keep")
    reason: str | None = None


@dataclass(slots=True)
class IntentItem:
    """Projection of any candidate item used when asking the model to filter."""

    domain: str | None = None
    position: int | None = None
    snippet: str | None = None


@dataclass(slots=True)
class IntentFilterResult(Generic[ItemT]):
    resolved_intent: ResolvedIntent
    filtered_items: list[ItemT]
    intent_filter_applied: bool
    filtered_out_count: int


def normalize_search_intent(intent: str | None) -> SearchIntent | None:
    """Map a caller-supplied intent string to a search intent by keyword prefix."""
    if not intent:
        return None
    normalized = intent.strip().lower()
    if normalized.startswith("info"):
        return SearchIntent.INFORMATIONAL
    if normalized.startswith("nav"):
        return SearchIntent.NAVIGATIONAL
    if normalized.startswith(("trans", "comm", "local")) or "investig" in normalized:
        return SearchIntent.TRANSACTIONAL
    if normalized.startswith("unknown"):
        return SearchIntent.UNKNOWN
    return None


def document_intent_item(document: SerpDocument) -> IntentItem:
    return IntentItem(
        domain=document.domain or None,
        position=document.position,
        snippet=document.content[:SNIPPET_CHARS],
    )


def intent_context(intent: SearchIntent) -> str:
    """System-prompt block telling the answering model which intent the data was filtered by."""
    return INTENT_FILTER_CONTEXT.format(intent=intent.value)


def _format_items(items: Sequence[IntentItem]) -> str:
    lines: list[str] = []
    for number, item in enumerate(items, start=1):
        position = f" (pos {item.position})" if item.position else ""
        snippet = f": {item.snippet}" if item.snippet else ""
        lines.append(f"{number}. {item.domain or 'unknown'}{position}{snippet}")
    return "\n".join(lines)


class IntentFilter:
    """Resolves search intent and asks the model which items match it.

    Every failure degrades toward "no filter": unresolvable intent becomes
    ``unknown``/``low`` and a failed relevance call keeps all items.
    """

    def __init__(self, model: Runnable, *, max_retries: int = 2) -> None:
        self.model = model
        self._classify = StructuredCompletion(
            SearchIntentClassification, SEARCH_INTENT_PROMPT, max_retries=max_retries
        )
        self._target = StructuredCompletion(
            TargetIntentExtraction, TARGET_INTENT_PROMPT, max_retries=max_retries
        )
        self._relevance = StructuredCompletion(
            RelevanceSelection, RELEVANCE_FILTER_PROMPT, max_retries=max_retries
        )

    def resolve_search_intent(
        self,
        query: str | None = None,
        provided_intent: str | None = None,
    ) -> ResolvedIntent:
        normalized = normalize_search_intent(provided_intent)
        if normalized is not None:
            return ResolvedIntent(intent=normalized, confidence="high")
        if not query or not query.strip():
            return _UNRESOLVED
        return self.detect_search_intent(query)

    def detect_search_intent(self, query: str) -> ResolvedIntent:
        try:
            parsed = self._classify.invoke(self.model, query=query)
        except Exception as exc:
            logger.warning("intent.detect_failed", error=str(exc))
            return _UNRESOLVED
        return ResolvedIntent(intent=parsed.intent, confidence=parsed.confidence)

    def extract_target_intent(
        self,
        query: str,
        history: Sequence[ConversationMessage] | None = None,
    ) -> SearchIntent | None:
        """Return an intent only when the user's wording names one explicitly."""
        try:
            parsed = self._target.invoke(
                self.model, query=query, history_context=render_history(history)
            )
        except Exception as exc:
            logger.warning("intent.target_failed", error=str(exc))
            return None
        if parsed.target_intent == "null":
            return None
        return SearchIntent(parsed.target_intent)

    def filter_items_by_intent(
        self,
        query: str | None,
        intent: SearchIntent,
        items: Sequence[IntentItem],
    ) -> set[int] | None:
        """Return the 0-based indices to keep, or None to keep everything.

        The model answers with 1-based numbers; anything out of range is dropped.
        """
        if not query or intent is SearchIntent.UNKNOWN or not items:
            return None
        try:
            parsed = self._relevance.invoke(
                self.model,
                intent_detection=INTENT_DETECTION,
                intent=intent.value,
                query=query,
                items=_format_items(items),
            )
        except Exception as exc:
            logger.warning("intent.filter_bypassed", intent=intent.value, error=str(exc))
            return None
        return {index - 1 for index in parsed.keep if 1 <= index <= len(items)}

    def apply_intent_filter_to_items(
        self,
        items: Sequence[ItemT],
        to_intent_item: Callable[[ItemT], IntentItem],
        *,
        query: str | None = None,
        provided_intent: str | None = None,
    ) -> IntentFilterResult[ItemT]:
        resolved = self.resolve_search_intent(query, provided_intent)
        keep = self.filter_items_by_intent(
            query, resolved.intent, [to_intent_item(item) for item in items]
        )
        if keep is None:
            filtered = list(items)
        else:
            filtered = [item for index, item in enumerate(items) if index in keep]

        result = IntentFilterResult(
            resolved_intent=resolved,
            filtered_items=filtered,
            intent_filter_applied=keep is not None,
            filtered_out_count=len(items) - len(filtered),
        )
        logger.info(
            "intent.filter_applied",
            intent=resolved.intent.value,
            confidence=resolved.confidence,
            applied=result.intent_filter_applied,
            filtered_out=result.filtered_out_count,
        )
        return result
