"""Aggregation and formatting helpers for the strategy and comparison paths."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from serp_agent.types import SerpDocument

DEFAULT_HEADER_PATTERNS = "How to guides, Best of lists, Step-by-step tutorials"
HEADER_PREVIEW_CHARS = 50
TEMPORAL_ITEMS_PER_PERIOD = 10

_HEADER_PATTERNS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("how to",), "How to guides"),
    (("best", "top"), "Best of lists"),
    (("step",), "Step-by-step tutorials"),
    (("guide",), "Comprehensive guides"),
    (("vs", "versus"), "Comparison articles"),
    (("review",), "Product reviews"),
    (("tips",), "Tips & tricks"),
    (("what is", "what are"), "Definition/explainer content"),
)


@dataclass(slots=True)
class ClusterStats:
    total_docs: int = 0
    unique_domains: list[str] = field(default_factory=list)
    serp_feature_frequency: Counter[str] = field(default_factory=Counter)
    category_paths: Counter[str] = field(default_factory=Counter)
    earliest: str = ""
    latest: str = ""


def compute_cluster_stats(documents: Sequence[SerpDocument]) -> ClusterStats:
    stats = ClusterStats(total_docs=len(documents))
    domains: dict[str, None] = {}
    for document in documents:
        if document.domain:
            domains.setdefault(document.domain)
        stats.serp_feature_frequency.update(document.serp_features)
        if document.categories:
            stats.category_paths[" > ".join(document.categories)] += 1
        iso_date = document.iso_date
        if iso_date:
            if not stats.earliest or iso_date < stats.earliest:
                stats.earliest = iso_date
            if not stats.latest or iso_date > stats.latest:
                stats.latest = iso_date
    stats.unique_domains = list(domains)
    return stats


def format_sample_summary(stats: ClusterStats) -> str:
    if stats.total_docs == 0:
        return "no stored results for this cluster"
    span = (
        f"{stats.earliest[:10]} to {stats.latest[:10]}" if stats.earliest else "undated snapshots"
    )
    return f"{stats.total_docs} results from {len(stats.unique_domains)} domains, captured {span}"


def format_serp_feature_stats(frequency: Counter[str]) -> str:
    """Top five features with their share of all feature occurrences."""
    total = sum(frequency.values())
    if total == 0:
        return "organic only"
    return ", ".join(
        f"{feature} ({round(count / total * 100)}%)" for feature, count in frequency.most_common(5)
    )


def top_items(frequency: Counter[str], n: int) -> list[str]:
    return [item for item, _ in frequency.most_common(n)]


def format_competitive_landscape(documents: Sequence[SerpDocument]) -> str:
    sections = []
    for rank, document in enumerate(documents, start=1):
        position = document.position or rank
        sections.append(f"### Rank #{position} - {document.domain or 'unknown'}\n{document.content}")
    return "\n\n---\n\n".join(sections)


def format_temporal_data(documents: Sequence[SerpDocument], period_label: str) -> str:
    if not documents:
        return f"{period_label}: No data available"
    entries = [
        f"[{document.iso_date or 'unknown date'}] Position {document.position or '?'} - "
        f"{document.domain or 'unknown'}\n{document.content}"
        for document in documents[:TEMPORAL_ITEMS_PER_PERIOD]
    ]
    return f"## {period_label}\n" + "\n\n".join(entries)


def normalize_header_to_pattern(header: str) -> str:
    lower = header.lower()
    for needles, label in _HEADER_PATTERNS:
        if any(needle in lower for needle in needles):
            return label
    return header[:HEADER_PREVIEW_CHARS]


def extract_common_headers(documents: Sequence[SerpDocument]) -> str:
    """Five most frequent header patterns across ``headers``, ``h1`` and ``h2`` metadata."""
    headers: list[str] = []
    for document in documents:
        metadata = document.metadata
        for key in ("headers", "h2"):
            values = metadata.get(key)
            if isinstance(values, list):
                headers.extend(str(value) for value in values)
        h1 = metadata.get("h1")
        if h1:
            headers.append(str(h1))

    if not headers:
        return DEFAULT_HEADER_PATTERNS
    frequency = Counter(normalize_header_to_pattern(header) for header in headers)
    return ", ".join(top_items(frequency, 5))
