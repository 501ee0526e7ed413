"""Topic cluster resolution from free text."""

from __future__ import annotations

import re
from collections.abc import Sequence

import structlog
from langchain_core.runnables import Runnable
from pydantic import BaseModel

from serp_agent.agent.guardrails import StructuredCompletion
from serp_agent.agent.prompts import CLUSTER_HINT_PROMPT, render_history
from serp_agent.errors import StoreError
from serp_agent.retrieval.store import SerpDocumentStore, cluster_exists
from serp_agent.types import ConversationMessage

logger = structlog.get_logger(__name__)

_SEPARATORS = re.compile(r"[-_]+")
_PREFIX = re.compile(r"^(cluster|niche)[:\s]+", re.IGNORECASE)
_SUFFIX = re.compile(r"\s*(cluster|niche)$", re.IGNORECASE)


class ClusterHint(BaseModel):
    cluster: str | None = None


def normalize_cluster_label(raw: str | None) -> str:
    """Strip ``cluster``/``niche`` affixes and turn hyphens/underscores into spaces.

    >>> normalize_cluster_label("pizza-cluster")
    'pizza'
    """
    if not raw or not raw.strip():
        return ""
    cleaned = _SEPARATORS.sub(" ", raw.strip())
    cleaned = _PREFIX.sub("", cleaned)
    cleaned = _SUFFIX.sub("", cleaned)
    return cleaned.strip()


class ClusterDetector:
    """Resolves a cluster name by model extraction, then vector similarity.

    An empty string means "no cluster scoping" and is not an error.
    """

    def __init__(
        self,
        model: Runnable,
        store: SerpDocumentStore,
        *,
        max_retries: int = 2,
        min_similarity_score: float = 0.8,
    ) -> None:
        self.model = model
        self.store = store
        self.min_similarity_score = min_similarity_score
        self._hint = StructuredCompletion(ClusterHint, CLUSTER_HINT_PROMPT, max_retries=max_retries)

    def extract_cluster_hint(
        self,
        query: str,
        history: Sequence[ConversationMessage] | None = None,
    ) -> str:
        try:
            parsed = self._hint.invoke(
                self.model, query=query, history_context=render_history(history)
            )
        except Exception as exc:
            logger.warning("cluster.hint_failed", error=str(exc))
            return ""
        return normalize_cluster_label(parsed.cluster)

    def detect_cluster_from_query(
        self,
        query: str,
        history: Sequence[ConversationMessage] | None = None,
        min_similarity_score: float | None = None,
    ) -> str:
        threshold = self.min_similarity_score if min_similarity_score is None else min_similarity_score

        hint = self.extract_cluster_hint(query, history)
        if hint:
            try:
                if cluster_exists(self.store, hint):
                    logger.info("cluster.detected", cluster=hint, source="hint")
                    return hint
            except StoreError as exc:
                logger.warning("cluster.lookup_failed", cluster=hint, error=str(exc))

        try:
            hits = self.store.similarity_search_with_score(query, 1)
        except StoreError as exc:
            logger.warning("cluster.similarity_failed", error=str(exc))
            return ""
        if hits and hits[0].score >= threshold:
            cluster = hits[0].document.cluster or ""
            logger.info("cluster.detected", cluster=cluster, source="similarity", score=hits[0].score)
            return cluster
        return ""
