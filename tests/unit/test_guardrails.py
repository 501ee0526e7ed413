import pytest
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.runnables import RunnableLambda
from pydantic import BaseModel, Field

from serp_agent.agent.guardrails import (
    REDACTION_MARKER,
    SENSITIVE_MARKERS,
    StructuredCompletion,
    output_guardrail,
    with_guardrails,
    with_structured_output_guards,
)
from serp_agent.errors import GuardrailError


class Score(BaseModel):
    value: int = Field(ge=0)


def _scripted(outputs: list[object], seen: list[object]) -> RunnableLambda:
    def _reply(prompt: object) -> object:
        seen.append(prompt)
        return outputs[len(seen) - 1]

    return RunnableLambda(_reply)


@pytest.mark.parametrize("marker", SENSITIVE_MARKERS)
def test_output_guardrail_replaces_whole_text(marker: str) -> None:
    leaked = f"Here you go: SUPABASE_{marker}=abc123 and more text"

    assert output_guardrail(leaked) == REDACTION_MARKER


def test_output_guardrail_redacts_message_content_and_keeps_type() -> None:
    message = AIMessage(content="config OPENAI_API_KEY=sk-live-999")

    redacted = output_guardrail(message)

    assert isinstance(redacted, AIMessage)
    assert redacted.content == REDACTION_MARKER
    assert "sk-live-999" not in str(redacted)


def test_output_guardrail_passes_clean_output_through() -> None:
    message = AIMessage(content="Top domains are eatwell.com and mealbox.com.")

    assert output_guardrail(message) is message


def test_with_guardrails_wraps_runnable() -> None:
    guarded = with_guardrails(RunnableLambda(lambda _: "token ACCESS_TOKEN=xyz"))

    assert guarded.invoke("hello") == REDACTION_MARKER


def test_structured_guard_repairs_after_one_invalid_output() -> None:
    seen: list[object] = []
    guarded = with_structured_output_guards(
        _scripted(["not json at all", '{"value": 3}'], seen), Score, max_retries=2
    )

    result = guarded.invoke("Give me a score.")

    assert result == Score(value=3)
    assert len(seen) == 2
    assert seen[1].startswith("Give me a score.")
    assert "SYSTEM: The previous output failed validation" in seen[1]


def test_structured_guard_raises_after_budget_is_spent() -> None:
    seen: list[object] = []
    guarded = with_structured_output_guards(
        _scripted(['{"value": -1}'] * 3, seen), Score, max_retries=2
    )

    with pytest.raises(GuardrailError) as excinfo:
        guarded.invoke("Give me a score.")

    assert excinfo.value.attempts == 3
    assert len(seen) == 3


def test_structured_guard_appends_messages_for_list_input() -> None:
    seen: list[object] = []
    guarded = with_structured_output_guards(
        _scripted(["nope", '{"value": 1}'], seen), Score, max_retries=1
    )

    guarded.invoke([HumanMessage(content="score please")])

    retry_input = seen[1]
    assert len(retry_input) == 3
    assert isinstance(retry_input[1], AIMessage)
    assert retry_input[1].content == "nope"
    assert "failed validation" in retry_input[2].content


def test_structured_guard_retries_other_inputs_unchanged() -> None:
    seen: list[object] = []
    guarded = with_structured_output_guards(
        _scripted(["nope", '{"value": 5}'], seen), Score, max_retries=2
    )

    result = guarded.invoke({"question": "score"})

    assert result.value == 5
    assert seen == [{"question": "score"}, {"question": "score"}]


def test_structured_guard_does_not_retry_model_errors() -> None:
    calls: list[str] = []

    def _broken(prompt: str) -> str:
        calls.append(prompt)
        raise ConnectionError("upstream reset")

    guarded = with_structured_output_guards(RunnableLambda(_broken), Score)

    with pytest.raises(ConnectionError):
        guarded.invoke("score")
    assert len(calls) == 1


def test_structured_guard_parses_redacted_text_as_failure() -> None:
    seen: list[object] = []
    guarded = with_structured_output_guards(
        _scripted(['{"value": 1, "note": "API_KEY"}', '{"value": 2}'], seen), Score
    )

    assert guarded.invoke("score").value == 2
    assert len(seen) == 2


def test_structured_completion_embeds_format_instructions() -> None:
    completion = StructuredCompletion(Score, "Rate {thing}.\n\n{format_instructions}")

    prompt = completion.format(thing="this page")

    assert prompt.startswith("Rate this page.")
    assert '"value"' in prompt

    seen: list[object] = []
    assert completion.invoke(_scripted(['{"value": 7}'], seen), thing="x") == Score(value=7)
