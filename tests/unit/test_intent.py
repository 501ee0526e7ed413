import pytest

from fakes import ScriptedChatModel, last_text, serp_doc
from serp_agent.agent.intent import (
    IntentFilter,
    IntentItem,
    document_intent_item,
    normalize_search_intent,
)
from serp_agent.types import SearchIntent


@pytest.mark.parametrize(
    ("provided", "expected"),
    [
        ("info", SearchIntent.INFORMATIONAL),
        ("  Informational ", SearchIntent.INFORMATIONAL),
        ("NAVIGATIONAL", SearchIntent.NAVIGATIONAL),
        ("trans", SearchIntent.TRANSACTIONAL),
        ("Commercial", SearchIntent.TRANSACTIONAL),
        ("investigational", SearchIntent.TRANSACTIONAL),
        ("local pack", SearchIntent.TRANSACTIONAL),
        ("Unknown", SearchIntent.UNKNOWN),
    ],
)
def test_provided_intent_prefix_resolves_without_model(provided: str, expected: SearchIntent) -> None:
    model = ScriptedChatModel()
    intent_filter = IntentFilter(model)

    resolved = intent_filter.resolve_search_intent("some query", provided)

    assert resolved.intent is expected
    assert resolved.confidence == "high"
    assert model.calls == []


def test_normalize_search_intent_rejects_unrecognized_text() -> None:
    assert normalize_search_intent("shopping") is None
    assert normalize_search_intent("") is None
    assert normalize_search_intent(None) is None


def test_nothing_to_classify_skips_model() -> None:
    model = ScriptedChatModel()

    resolved = IntentFilter(model).resolve_search_intent(None, None)

    assert (resolved.intent, resolved.confidence) == (SearchIntent.UNKNOWN, "low")
    assert model.calls == []


def test_query_is_classified_by_model() -> None:
    model = ScriptedChatModel(responses=['{"intent": "transactional", "confidence": "medium"}'])

    resolved = IntentFilter(model).resolve_search_intent("buy meal kit", "shopping")

    assert (resolved.intent, resolved.confidence) == (SearchIntent.TRANSACTIONAL, "medium")
    assert len(model.calls) == 1


def test_classification_failure_returns_unknown_low() -> None:
    model = ScriptedChatModel(responder=lambda _: "I think it is informational?")

    resolved = IntentFilter(model, max_retries=1).resolve_search_intent("meal ideas")

    assert (resolved.intent, resolved.confidence) == (SearchIntent.UNKNOWN, "low")
    assert len(model.calls) == 2


@pytest.mark.parametrize(
    ("query", "intent", "items"),
    [
        (None, SearchIntent.INFORMATIONAL, [IntentItem(domain="a.com")]),
        ("meal ideas", SearchIntent.UNKNOWN, [IntentItem(domain="a.com")]),
        ("meal ideas", SearchIntent.INFORMATIONAL, []),
    ],
)
def test_filter_returns_none_without_calling_model(query, intent, items) -> None:
    model = ScriptedChatModel()

    assert IntentFilter(model).filter_items_by_intent(query, intent, items) is None
    assert model.calls == []


def test_filter_maps_one_based_indices_and_drops_invalid() -> None:
    model = ScriptedChatModel(responses=['{"keep": [1, 3, 7, 0]}'])
    items = [
        IntentItem(domain="eatwell.com", position=1, snippet="healthy recipes"),
        IntentItem(domain="mealbox.com", position=2, snippet="buy a kit"),
        IntentItem(domain=None, position=None, snippet=None),
    ]

    keep = IntentFilter(model).filter_items_by_intent("meal ideas", SearchIntent.INFORMATIONAL, items)

    assert keep == {0, 2}
    prompt = last_text(model.calls[0])
    assert "1. eatwell.com (pos 1): healthy recipes" in prompt
    assert "3. unknown" in prompt
    assert "Detected intent: informational" in prompt


def test_filter_failure_keeps_everything() -> None:
    model = ScriptedChatModel(responder=lambda _: "sorry")

    keep = IntentFilter(model, max_retries=2).filter_items_by_intent(
        "meal ideas", SearchIntent.INFORMATIONAL, [IntentItem(domain="a.com")]
    )

    assert keep is None
    assert len(model.calls) == 3


def test_apply_intent_filter_reports_what_was_removed() -> None:
    model = ScriptedChatModel(responses=['{"keep": [2]}'])
    documents = [
        serp_doc("Recipes", cluster="c", query="q", position=1, domain="a.com", iso_date="2026-01-01"),
        serp_doc("Buy now", cluster="c", query="q", position=2, domain="b.com", iso_date="2026-01-01"),
        serp_doc("Guide", cluster="c", query="q", position=3, domain="c.com", iso_date="2026-01-01"),
    ]

    result = IntentFilter(model).apply_intent_filter_to_items(
        documents, document_intent_item, query="meal kits", provided_intent="transactional"
    )

    assert result.resolved_intent.intent is SearchIntent.TRANSACTIONAL
    assert [doc.domain for doc in result.filtered_items] == ["b.com"]
    assert result.intent_filter_applied is True
    assert result.filtered_out_count == 2


def test_apply_intent_filter_without_query_keeps_items() -> None:
    model = ScriptedChatModel()

    result = IntentFilter(model).apply_intent_filter_to_items(
        ["x", "y"], lambda item: IntentItem(snippet=item), provided_intent="informational"
    )

    assert result.filtered_items == ["x", "y"]
    assert result.intent_filter_applied is False
    assert result.filtered_out_count == 0


def test_target_intent_requires_explicit_wording() -> None:
    model = ScriptedChatModel(
        responses=['{"target_intent": "null"}', '{"target_intent": "transactional"}']
    )
    intent_filter = IntentFilter(model)

    assert intent_filter.extract_target_intent("best recipe sites") is None
    assert (
        intent_filter.extract_target_intent("show transactional results")
        is SearchIntent.TRANSACTIONAL
    )
