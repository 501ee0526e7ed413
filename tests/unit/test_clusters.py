import pytest

from fakes import ScriptedChatModel, make_fast_responder
from serp_agent.agent.clusters import ClusterDetector, normalize_cluster_label
from serp_agent.retrieval.store import InMemorySerpStore
from serp_agent.types import ConversationMessage


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("pizza-cluster", "pizza"),
        ("Cluster: healthy_meal_ideas", "healthy meal ideas"),
        ("keto niche", "keto"),
        ("niche-vegan-snacks", "vegan snacks"),
        ("  healthy meal ideas  ", "healthy meal ideas"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_cluster_label(raw, expected) -> None:
    assert normalize_cluster_label(raw) == expected


def test_confirmed_hint_is_returned(store: InMemorySerpStore) -> None:
    model = ScriptedChatModel(responder=make_fast_responder(cluster="pizza-cluster"))

    assert ClusterDetector(model, store).detect_cluster_from_query("top pizza pages?") == "pizza"


def test_unknown_hint_falls_back_to_similarity(store: InMemorySerpStore) -> None:
    model = ScriptedChatModel(responder=make_fast_responder(cluster="sourdough"))
    detector = ClusterDetector(model, store)

    exact = "Best pizza dough recipe with long fermentation."

    assert detector.detect_cluster_from_query(exact) == "pizza"
    assert detector.detect_cluster_from_query(exact, min_similarity_score=1.01) == ""


def test_low_similarity_yields_empty_cluster(store: InMemorySerpStore) -> None:
    model = ScriptedChatModel(responder=make_fast_responder(cluster=""))

    assert ClusterDetector(model, store).detect_cluster_from_query("quantum chromodynamics") == ""


def test_hint_uses_history_for_pronouns(store: InMemorySerpStore) -> None:
    model = ScriptedChatModel(responder=make_fast_responder(cluster="healthy meal ideas"))
    history = [
        ConversationMessage(role="user", content="Tell me about healthy meal ideas"),
        ConversationMessage(role="assistant", content="Sure."),
    ]

    cluster = ClusterDetector(model, store).detect_cluster_from_query("what about it?", history)

    assert cluster == "healthy meal ideas"
    prompt = str(model.calls[0][-1].content)
    assert "USER: Tell me about healthy meal ideas" in prompt
    assert "ASSISTANT: Sure." in prompt


def test_detection_is_idempotent(store: InMemorySerpStore) -> None:
    model = ScriptedChatModel(responder=make_fast_responder(cluster="healthy meal ideas"))
    detector = ClusterDetector(model, store)

    first = detector.detect_cluster_from_query("healthy meal ideas rankings")
    second = detector.detect_cluster_from_query("healthy meal ideas rankings")

    assert first == second == "healthy meal ideas"


def test_model_failure_still_uses_similarity(store: InMemorySerpStore) -> None:
    model = ScriptedChatModel(responder=lambda _: "no idea")
    detector = ClusterDetector(model, store, max_retries=0)

    assert detector.detect_cluster_from_query("Best pizza dough recipe with long fermentation.") == "pizza"
