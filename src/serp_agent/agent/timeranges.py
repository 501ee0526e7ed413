"""Comparison-period detection bounded by the store's observed dates."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import structlog
from langchain_core.runnables import Runnable
from pydantic import BaseModel, model_validator

from serp_agent.agent.guardrails import StructuredCompletion
from serp_agent.agent.prompts import TIME_RANGE_PROMPT
from serp_agent.retrieval.store import SerpDocumentStore
from serp_agent.types import TimeRange, TimeRanges

logger = structlog.get_logger(__name__)

EMPTY_STORE_EARLIEST = date(2000, 1, 1)


class Period(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def _ordered(self) -> "Period":
        if self.start > self.end:
            raise ValueError("period start must not be after its end")
        return self


class TimeRangeExtraction(BaseModel):
    has_time_reference: bool
    earlier_period: Period | None = None
    later_period: Period | None = None


def midpoint_split(earliest: date, latest: date) -> TimeRanges:
    """Split ``[earliest, latest]`` at its midpoint; both halves share the midpoint day."""
    if latest < earliest:
        earliest, latest = latest, earliest
    midpoint = earliest + (latest - earliest) / 2
    return TimeRanges(
        earlier=TimeRange(start=earliest, end=midpoint),
        later=TimeRange(start=midpoint, end=latest),
    )


class TimeRangeDetector:
    def __init__(
        self,
        model: Runnable,
        store: SerpDocumentStore,
        *,
        max_retries: int = 2,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.model = model
        self.store = store
        self._today = today
        self._extract = StructuredCompletion(
            TimeRangeExtraction, TIME_RANGE_PROMPT, max_retries=max_retries
        )

    def data_bounds(self) -> tuple[date, date]:
        bounds = self.store.date_bounds()
        if bounds is None:
            return EMPTY_STORE_EARLIEST, self._today()
        return bounds

    def detect_time_ranges(self, query: str) -> TimeRanges:
        """Return the earlier and later periods to compare.

        Falls back to a midpoint split of the store's date span when the
        query has no temporal contrast or extraction fails.
        """
        earliest, latest = self.data_bounds()
        try:
            extracted = self._extract.invoke(
                self.model,
                query=query,
                today=self._today().isoformat(),
                earliest=earliest.isoformat(),
                latest=latest.isoformat(),
            )
        except Exception as exc:
            logger.warning("timeranges.extract_failed", error=str(exc))
            extracted = None

        if (
            extracted is not None
            and extracted.has_time_reference
            and extracted.earlier_period is not None
            and extracted.later_period is not None
        ):
            ranges = TimeRanges(
                earlier=TimeRange(
                    start=extracted.earlier_period.start, end=extracted.earlier_period.end
                ),
                later=TimeRange(
                    start=extracted.later_period.start, end=extracted.later_period.end
                ),
            )
            source = "model"
        else:
            ranges = midpoint_split(earliest, latest)
            source = "midpoint"

        logger.info(
            "timeranges.detected",
            source=source,
            earlier=ranges.earlier.to_dict(),
            later=ranges.later.to_dict(),
        )
        return ranges
