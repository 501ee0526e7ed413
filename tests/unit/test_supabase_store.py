from datetime import date
from types import SimpleNamespace

import pytest

from serp_agent.errors import StoreError
from serp_agent.retrieval.store import DocumentQuery, TokenHashEmbeddings
from serp_agent.retrieval.supabase_store import SupabaseSerpStore


class RecordingBuilder:
    """Stands in for a postgrest request builder and records each chained call."""

    def __init__(self, rows, calls, error=None) -> None:
        self.rows = rows
        self.calls = calls
        self.error = error

    def __getattr__(self, name):
        def _chain(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return _chain

    def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.rows)


class FakeSupabase:
    def __init__(self, rows=None, error=None) -> None:
        self.rows = rows or []
        self.error = error
        self.calls: list = []

    def table(self, name):
        self.calls.append(("table", (name,), {}))
        return RecordingBuilder(self.rows, self.calls, self.error)

    def rpc(self, name, params):
        self.calls.append(("rpc", (name,), params))
        return RecordingBuilder(self.rows, self.calls, self.error)


def _store(client: FakeSupabase) -> SupabaseSerpStore:
    return SupabaseSerpStore(url="", key="", embeddings=TokenHashEmbeddings(), client=client)


def test_query_documents_builds_metadata_filters() -> None:
    client = FakeSupabase(
        rows=[{"id": 7, "content": "Pizza dough", "metadata": {"domain": "pizzalab.com", "position": 1}}]
    )

    documents = _store(client).query_documents(
        DocumentQuery(
            cluster_like="pizza",
            position_max=3,
            require_serp_features=True,
            date_from=date(2026, 1, 1),
            date_to=date(2026, 1, 31),
            order_by="position",
            limit=5,
        )
    )

    assert documents[0].domain == "pizzalab.com"
    assert documents[0].doc_id == "7"
    assert ("ilike", ("metadata->>cluster", "%pizza%"), {}) in client.calls
    assert ("lte", ("metadata->position", 3), {}) in client.calls
    assert ("neq", ("metadata->serp_features", "[]"), {}) in client.calls
    assert ("lt", ("metadata->>iso_date", "2026-02-01"), {}) in client.calls
    assert ("order", ("metadata->position",), {"desc": False}) in client.calls
    assert client.calls[-1] == ("limit", (5,), {})


def test_empty_query_set_short_circuits() -> None:
    client = FakeSupabase()

    assert _store(client).query_documents(DocumentQuery(query_in=())) == []
    assert not any(name == "limit" for name, _, _ in client.calls)


def test_similarity_search_uses_match_function() -> None:
    client = FakeSupabase(rows=[{"id": 1, "content": "x", "metadata": {}, "similarity": 0.91}])

    hits = _store(client).similarity_search_with_score("pizza", 3)

    assert hits[0].score == pytest.approx(0.91)
    name, args, params = client.calls[0]
    assert (name, args) == ("rpc", ("match_seo_documents",))
    assert params["match_count"] == 3
    assert len(params["query_embedding"]) == 256


def test_date_bounds_reads_first_and_last_day() -> None:
    client = FakeSupabase(rows=[{"iso_date": "2026-02-15T08:00:00Z"}])

    assert _store(client).date_bounds() == (date(2026, 2, 15), date(2026, 2, 15))
    assert _store(FakeSupabase()).date_bounds() is None


def test_request_failures_raise_store_error() -> None:
    client = FakeSupabase(error=ConnectionError("timeout"))

    with pytest.raises(StoreError, match="query_documents"):
        _store(client).query_documents(DocumentQuery(cluster_eq="pizza"))
