"""Document store contract and the in-memory adapter."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from hashlib import blake2b
from math import sqrt
from typing import Literal, Protocol

from langchain_core.embeddings import Embeddings

from serp_agent.types import ScoredDocument, SerpDocument


@dataclass(slots=True, frozen=True)
class DocumentQuery:
    """Filter shape for read operations against the SERP document table.

    ``*_like`` fields are case-insensitive substring matches. ``date_from`` and
    ``date_to`` compare the day part of ``iso_date`` and are inclusive.
    Documents without a position never satisfy a position bound.
    """

    cluster_eq: str | None = None
    cluster_like: str | None = None
    query_like: str | None = None
    query_in: tuple[str, ...] | None = None
    position_min: int | None = None
    position_max: int | None = None
    require_serp_features: bool = False
    date_from: date | None = None
    date_to: date | None = None
    order_by: Literal["position", "iso_date"] | None = None
    descending: bool = False
    limit: int = 10


class SerpDocumentStore(Protocol):
    """Narrow read-only view of the hybrid keyword/vector store."""

    def query_documents(self, query: DocumentQuery) -> list[SerpDocument]:
        """Return documents matching a metadata filter."""

    def similarity_search_with_score(self, text: str, k: int) -> list[ScoredDocument]:
        """Return the top-k nearest documents with a similarity score."""

    def date_bounds(self) -> tuple[date, date] | None:
        """Return the earliest and latest ``iso_date`` day, or None when empty."""


def cluster_exists(store: SerpDocumentStore, cluster: str) -> bool:
    """True when at least one document is tagged with exactly ``cluster``."""
    return bool(store.query_documents(DocumentQuery(cluster_eq=cluster, limit=1)))


def parse_iso_day(value: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class TokenHashEmbeddings(Embeddings):
    """Deterministic bag-of-words embeddings for tests and offline runs."""

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in text.lower().split():
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            vector[idx] += -1.0 if digest[4] % 2 else 1.0
        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class InMemorySerpStore:
    """Deterministic store used for tests and local prototyping."""

    def __init__(
        self,
        documents: Iterable[SerpDocument] = (),
        *,
        embeddings: Embeddings | None = None,
    ) -> None:
        self._embeddings = embeddings or TokenHashEmbeddings()
        self._documents: list[SerpDocument] = []
        self._vectors: list[list[float]] = []
        self.add_documents(list(documents))

    def add_documents(self, documents: list[SerpDocument]) -> None:
        if not documents:
            return
        vectors = self._embeddings.embed_documents([doc.content for doc in documents])
        self._documents.extend(documents)
        self._vectors.extend(vectors)

    def query_documents(self, query: DocumentQuery) -> list[SerpDocument]:
        matches = [doc for doc in self._documents if _matches(doc, query)]
        if query.order_by == "position":
            matches.sort(
                key=lambda doc: (doc.position is None, doc.position or 0),
                reverse=query.descending,
            )
        elif query.order_by == "iso_date":
            matches.sort(key=lambda doc: doc.iso_date, reverse=query.descending)
        return matches[: query.limit]

    def similarity_search_with_score(self, text: str, k: int) -> list[ScoredDocument]:
        query_vector = self._embeddings.embed_query(text)
        scored = [
            ScoredDocument(document=doc, score=_cosine_similarity(query_vector, vector))
            for doc, vector in zip(self._documents, self._vectors, strict=True)
        ]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:k]

    def date_bounds(self) -> tuple[date, date] | None:
        days = [day for day in (parse_iso_day(doc.iso_date) for doc in self._documents) if day]
        if not days:
            return None
        return min(days), max(days)


def _matches(doc: SerpDocument, query: DocumentQuery) -> bool:
    cluster = doc.cluster or ""
    if query.cluster_eq is not None and cluster != query.cluster_eq:
        return False
    if query.cluster_like and query.cluster_like.lower() not in cluster.lower():
        return False
    if query.query_like and query.query_like.lower() not in doc.query.lower():
        return False
    if query.query_in is not None and doc.query not in query.query_in:
        return False
    if query.position_min is not None or query.position_max is not None:
        position = doc.position
        if position is None:
            return False
        if query.position_min is not None and position < query.position_min:
            return False
        if query.position_max is not None and position > query.position_max:
            return False
    if query.require_serp_features and not doc.serp_features:
        return False
    if query.date_from is not None or query.date_to is not None:
        day = parse_iso_day(doc.iso_date)
        if day is None:
            return False
        if query.date_from is not None and day < query.date_from:
            return False
        if query.date_to is not None and day > query.date_to:
            return False
    return True


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)


def next_day(day: date) -> date:
    return day + timedelta(days=1)
