from __future__ import annotations

import pytest

from fakes import serp_doc
from serp_agent.retrieval.store import InMemorySerpStore
from serp_agent.types import SerpDocument


@pytest.fixture
def serp_documents() -> list[SerpDocument]:
    return [
        serp_doc(
            "Twenty healthy meal ideas for busy weeknights with prep tips.",
            cluster="healthy meal ideas",
            query="healthy meal ideas",
            position=1,
            domain="eatwell.com",
            iso_date="2026-01-05T08:00:00Z",
            serp_features=["peopleAlsoAsk", "video"],
            categories=["Food", "Healthy"],
            h1="Best healthy meal ideas",
            h2=["How to meal prep", "Tips for beginners"],
        ),
        serp_doc(
            "Buy a weekly healthy meal kit delivered to your door.",
            cluster="healthy meal ideas",
            query="healthy meal ideas",
            position=2,
            domain="mealbox.com",
            iso_date="2026-01-05T08:00:00Z",
            serp_features=["shopping"],
            categories=["Food", "Delivery"],
        ),
        serp_doc(
            "A step by step guide to balanced plates.",
            cluster="healthy meal ideas",
            query="healthy meal prep",
            position=4,
            domain="nutrition.org",
            iso_date="2026-02-01T08:00:00Z",
            categories=["Food", "Healthy"],
        ),
        serp_doc(
            "Healthy meal ideas video roundup from top creators.",
            cluster="healthy meal ideas",
            query="healthy meal ideas",
            position=3,
            domain="videochef.tv",
            iso_date="2026-03-10T08:00:00Z",
            serp_features=["video"],
            categories=["Food", "Video"],
        ),
        serp_doc(
            "Best pizza dough recipe with long fermentation.",
            cluster="pizza",
            query="best pizza dough",
            position=1,
            domain="pizzalab.com",
            iso_date="2026-02-15T08:00:00Z",
            serp_features=["answerBox"],
            categories=["Food", "Pizza"],
        ),
    ]


@pytest.fixture
def store(serp_documents: list[SerpDocument]) -> InMemorySerpStore:
    return InMemorySerpStore(serp_documents)
