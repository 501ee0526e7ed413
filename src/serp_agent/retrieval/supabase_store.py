"""Supabase adapter for the ``seo_documents`` table and its match function."""

from __future__ import annotations

from datetime import date
from typing import Any

import structlog
from langchain_core.embeddings import Embeddings

from serp_agent.errors import StoreError
from serp_agent.retrieval.store import DocumentQuery, next_day, parse_iso_day
from serp_agent.types import ScoredDocument, SerpDocument

logger = structlog.get_logger(__name__)

TABLE_NAME = "seo_documents"
MATCH_FUNCTION_NAME = "match_seo_documents"


class SupabaseSerpStore:
    """Read-only store backed by Supabase/PostgREST and pgvector.

    Text metadata is filtered through ``metadata->>field``; ``position`` is
    compared through ``metadata->position`` so jsonb numeric ordering applies.
    """

    def __init__(
        self,
        *,
        url: str,
        key: str,
        embeddings: Embeddings,
        timeout_seconds: float = 10.0,
        table_name: str = TABLE_NAME,
        match_function: str = MATCH_FUNCTION_NAME,
        client: Any | None = None,
    ) -> None:
        if client is None:
            from supabase import ClientOptions, create_client

            client = create_client(
                url,
                key,
                options=ClientOptions(
                    postgrest_client_timeout=timeout_seconds,
                    auto_refresh_token=False,
                    persist_session=False,
                ),
            )
        self._client = client
        self._embeddings = embeddings
        self._table = table_name
        self._match_function = match_function

    def query_documents(self, query: DocumentQuery) -> list[SerpDocument]:
        builder = self._client.table(self._table).select("id, content, metadata")
        if query.cluster_eq is not None:
            builder = builder.eq("metadata->>cluster", query.cluster_eq)
        if query.cluster_like:
            builder = builder.ilike("metadata->>cluster", f"%{query.cluster_like}%")
        if query.query_like:
            builder = builder.ilike("metadata->>query", f"%{query.query_like}%")
        if query.query_in is not None:
            if not query.query_in:
                return []
            builder = builder.in_("metadata->>query", list(query.query_in))
        if query.position_min is not None:
            builder = builder.gte("metadata->position", query.position_min)
        if query.position_max is not None:
            builder = builder.lte("metadata->position", query.position_max)
        if query.require_serp_features:
            builder = builder.neq("metadata->serp_features", "[]")
        if query.date_from is not None:
            builder = builder.gte("metadata->>iso_date", query.date_from.isoformat())
        if query.date_to is not None:
            builder = builder.lt("metadata->>iso_date", next_day(query.date_to).isoformat())
        if query.order_by == "position":
            builder = builder.order("metadata->position", desc=query.descending)
        elif query.order_by == "iso_date":
            builder = builder.order("metadata->>iso_date", desc=query.descending)

        rows = self._execute(builder.limit(query.limit), operation="query_documents")
        return [_row_to_document(row) for row in rows]

    def similarity_search_with_score(self, text: str, k: int) -> list[ScoredDocument]:
        vector = self._embeddings.embed_query(text)
        rows = self._execute(
            self._client.rpc(
                self._match_function,
                {"query_embedding": vector, "match_count": k, "filter": {}},
            ),
            operation="similarity_search",
        )
        return [
            ScoredDocument(document=_row_to_document(row), score=float(row.get("similarity", 0.0)))
            for row in rows
        ]

    def date_bounds(self) -> tuple[date, date] | None:
        earliest = self._first_date(descending=False)
        latest = self._first_date(descending=True)
        if earliest is None or latest is None:
            return None
        return earliest, latest

    def _first_date(self, *, descending: bool) -> date | None:
        builder = (
            self._client.table(self._table)
            .select("iso_date:metadata->>iso_date")
            .order("metadata->>iso_date", desc=descending)
            .limit(1)
        )
        rows = self._execute(builder, operation="date_bounds")
        if not rows:
            return None
        return parse_iso_day(str(rows[0].get("iso_date") or ""))

    def _execute(self, builder: Any, *, operation: str) -> list[dict[str, Any]]:
        try:
            response = builder.execute()
        except Exception as exc:
            logger.error("store.request_failed", operation=operation, error=str(exc))
            raise StoreError(f"Document store {operation} failed: {exc}") from exc
        return list(response.data or [])


def _row_to_document(row: dict[str, Any]) -> SerpDocument:
    return SerpDocument(
        content=str(row.get("content") or ""),
        metadata=dict(row.get("metadata") or {}),
        doc_id=str(row.get("id") or ""),
    )
