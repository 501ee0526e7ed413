"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from serp_agent.errors import RunCancelledError
from serp_agent.obs.tracing import Timer
from serp_agent.types import SearchIntent, ToolTrace

logger = structlog.get_logger(__name__)

OUTPUT_PREVIEW_CHARS = 320


class ToolSpec(BaseModel):
    """Declarative tool specification used to advertise a tool to the model."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    tags: list[str] = Field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ToolContext:
    """Per-run values a tool may fall back to when the model omits them."""

    user_query: str | None = None
    target_intent: SearchIntent | None = None


class ToolExecutor(Protocol):
    def run(self, raw_call: Mapping[str, Any], context: ToolContext) -> str:
        """Validate a raw tool call and return its JSON string result."""


class ToolRegistry:
    """Advertises tool specs and executes model-issued tool calls.

    ``execute`` never raises for a failing tool: invalid arguments, unknown
    names and runtime errors come back as ``{"error": ...}`` JSON so the
    calling loop can keep going. Cancellation is the one exception.
    """

    def __init__(self, executor: ToolExecutor | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._executor = executor

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def execute(
        self,
        raw_call: Mapping[str, Any],
        context: ToolContext | None = None,
        *,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> str:
        name = str(raw_call.get("name") or "")
        call_id = str(raw_call.get("id") or "")
        payload = dict(raw_call.get("args") or {})

        with Timer() as timer:
            if name not in self._tools or self._executor is None:
                logger.warning("tool.unknown", tool=name, tool_call_id=call_id)
                output = _error_payload(f"Unknown tool: {name}")
            else:
                output = self._run(name, call_id, raw_call, context or ToolContext())
        latency_ms = timer.elapsed_ms

        logger.info("tool.executed", tool=name, tool_call_id=call_id, latency_ms=round(latency_ms, 1))
        if observer is not None:
            observer(
                ToolTrace(
                    name=name,
                    tool_call_id=call_id,
                    input_payload=payload,
                    output_preview=output[:OUTPUT_PREVIEW_CHARS],
                    latency_ms=latency_ms,
                )
            )
        return output

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    func=self._build_function(spec),
                )
            )
        return tools

    def _build_function(self, spec: ToolSpec) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            return self.execute({"name": spec.name, "args": kwargs, "id": ""})

        return _callable

    def _run(
        self,
        name: str,
        call_id: str,
        raw_call: Mapping[str, Any],
        context: ToolContext,
    ) -> str:
        assert self._executor is not None
        try:
            return self._executor.run(raw_call, context)
        except RunCancelledError:
            raise
        except ValidationError as exc:
            logger.warning("tool.invalid_arguments", tool=name, tool_call_id=call_id, error=str(exc))
            return _error_payload(
                f"Invalid arguments for {name}: {exc.errors(include_url=False)}"
            )
        except Exception as exc:
            logger.error("tool.failed", tool=name, tool_call_id=call_id, error=str(exc))
            return _error_payload(str(exc) or type(exc).__name__)


def _error_payload(message: str) -> str:
    return json.dumps({"error": message}, default=str)
