import json

import pytest
from pydantic import BaseModel, Field, ValidationError

from serp_agent.agent.registry import ToolContext, ToolRegistry, ToolSpec
from serp_agent.agent.tools import (
    TOOL_SPECS,
    AnalyzeContentTypesCall,
    GetClusterDataCall,
    SearchByQueryCall,
    parse_tool_call,
)
from serp_agent.errors import RunCancelledError


class EchoInput(BaseModel):
    value: int = Field(ge=1)


class EchoExecutor:
    def __init__(self) -> None:
        self.contexts: list[ToolContext] = []

    def run(self, raw_call, context: ToolContext) -> str:
        self.contexts.append(context)
        data = EchoInput.model_validate(raw_call["args"])
        if data.value == 13:
            raise RuntimeError("unlucky")
        if data.value == 99:
            raise RunCancelledError("stop")
        return json.dumps({"value": data.value})


def _echo_registry() -> tuple[ToolRegistry, EchoExecutor]:
    executor = EchoExecutor()
    registry = ToolRegistry(executor)
    registry.register(ToolSpec(name="echo", description="echo positive int", args_schema=EchoInput))
    return registry, executor


def test_tool_registry_validation_errors_become_payloads() -> None:
    registry, _ = _echo_registry()

    assert json.loads(registry.execute({"name": "echo", "args": {"value": 3}, "id": "a"})) == {"value": 3}

    invalid = json.loads(registry.execute({"name": "echo", "args": {"value": 0}, "id": "b"}))
    assert invalid["error"].startswith("Invalid arguments for echo")


def test_duplicate_tool_registration_rejected() -> None:
    registry, _ = _echo_registry()

    with pytest.raises(ValueError):
        registry.register(ToolSpec(name="echo", description="again", args_schema=EchoInput))


def test_unknown_tool_and_runtime_errors_are_captured() -> None:
    registry, _ = _echo_registry()

    unknown = json.loads(registry.execute({"name": "delete_everything", "args": {}, "id": "x"}))
    failed = json.loads(registry.execute({"name": "echo", "args": {"value": 13}, "id": "y"}))

    assert unknown == {"error": "Unknown tool: delete_everything"}
    assert failed == {"error": "unlucky"}


def test_cancellation_is_not_captured() -> None:
    registry, _ = _echo_registry()

    with pytest.raises(RunCancelledError):
        registry.execute({"name": "echo", "args": {"value": 99}, "id": "z"})


def test_tool_observer_captures_latency_and_payload() -> None:
    registry, executor = _echo_registry()
    observed = []
    context = ToolContext(user_query="hello")

    registry.execute({"name": "echo", "args": {"value": 5}, "id": "call_9"}, context, observer=observed.append)

    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].tool_call_id == "call_9"
    assert observed[0].input_payload == {"value": 5}
    assert observed[0].latency_ms >= 0.0
    assert executor.contexts == [context]


def test_langchain_tools_mirror_specs() -> None:
    registry = ToolRegistry()
    for spec in TOOL_SPECS:
        registry.register(spec)

    names = [tool.name for tool in registry.as_langchain_tools()]

    assert names == [
        "search_by_query",
        "get_top_performers",
        "get_serp_features",
        "get_cluster_data",
        "analyze_content_types",
    ]


def test_parse_tool_call_selects_variant_by_name() -> None:
    search = parse_tool_call({"name": "search_by_query", "args": {"search_query": "pizza"}, "id": "1"})
    analyze = parse_tool_call({"name": "analyze_content_types", "args": {"position_threshold": 5}, "id": None})

    assert isinstance(search, SearchByQueryCall)
    assert search.args.search_query == "pizza"
    assert isinstance(analyze, AnalyzeContentTypesCall)
    assert analyze.id == ""
    assert analyze.args.position_threshold == 5


def test_parse_tool_call_rejects_bad_calls() -> None:
    with pytest.raises(ValidationError):
        parse_tool_call({"name": "get_cluster_data", "args": {}})
    with pytest.raises(ValidationError):
        parse_tool_call({"name": "drop_table", "args": {}})

    assert isinstance(
        parse_tool_call({"name": "get_cluster_data", "args": {"cluster": "pizza"}}), GetClusterDataCall
    )
