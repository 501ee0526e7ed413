"""Run tracing and latency accounting."""

from __future__ import annotations

import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from serp_agent.types import ToolTrace


@dataclass(slots=True)
class RunRecord:
    trace_id: str
    timestamp_utc: str
    query: str
    route: str
    response_type: str
    cluster: str
    tool_traces: list[ToolTrace]
    latency_ms: float
    error: str | None = None


class TraceStore:
    """In-memory run storage for API-level observability.

    Shared by every request, so all access goes through one lock.
    """

    def __init__(self, max_records: int = 1000) -> None:
        self._records: dict[str, RunRecord] = {}
        self._max_records = max_records
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        query: str,
        route: str,
        response_type: str,
        cluster: str,
        tool_traces: list[ToolTrace],
        latency_ms: float,
        error: str | None = None,
    ) -> RunRecord:
        record = RunRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            query=query,
            route=route,
            response_type=response_type,
            cluster=cluster,
            tool_traces=list(tool_traces),
            latency_ms=latency_ms,
            error=error,
        )
        with self._lock:
            self._records[record.trace_id] = record
            while len(self._records) > self._max_records:
                self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> RunRecord:
        with self._lock:
            record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[RunRecord]:
        with self._lock:
            return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate run metrics for dashboard display."""
        with self._lock:
            records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "routes": {},
                "errors": 0,
                "tool_calls": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "routes": dict(Counter(record.route for record in records)),
            "errors": sum(1 for record in records if record.error),
            "tool_calls": sum(len(record.tool_traces) for record in records),
        }


class Timer:
    """Simple context timer used by the planner and the tool registry."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
