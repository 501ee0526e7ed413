"""Output-safety and schema-repair guards applied around model calls."""

from __future__ import annotations

import json
from typing import Any, Generic, TypeVar

import structlog
from langchain_core.exceptions import OutputParserException
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import PromptTemplate
from langchain_core.runnables import Runnable, RunnableConfig, RunnableLambda
from pydantic import BaseModel, ValidationError

from serp_agent.errors import GuardrailError

logger = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

REDACTION_MARKER = "[REDACTED]"
SENSITIVE_MARKERS = (
    "SECRET_KEY",
    "API_KEY",
    "ACCESS_KEY",
    "ROLE_KEY",
    "ACCESS_TOKEN",
)
_REPAIR_NOTICE = (
    'SYSTEM: The previous output failed validation with error: "{error}". '
    "Please try again and follow the format instructions exactly."
)
_ERROR_PREVIEW_CHARS = 500


def extract_text(output: Any) -> str:
    """Return the textual payload of a model response."""
    if isinstance(output, str):
        return output
    content = getattr(output, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return json.dumps(output, default=str)


def output_guardrail(output: Any) -> Any:
    """Replace the whole response with the redaction marker if it carries a secret marker.

    Messages keep their type and tool calls; only ``content`` is substituted.
    """
    text = extract_text(output)
    matched = [marker for marker in SENSITIVE_MARKERS if marker in text]
    if not matched:
        return output

    logger.warning("guardrail.output_redacted", markers=matched, length=len(text))
    if isinstance(output, BaseMessage):
        return output.model_copy(update={"content": REDACTION_MARKER})
    return REDACTION_MARKER


def with_guardrails(runnable: Runnable) -> Runnable:
    """Wrap a runnable so every response passes through ``output_guardrail``."""

    def _guarded(input_: Any, config: RunnableConfig | None = None) -> Any:
        return output_guardrail(runnable.invoke(input_, config))

    return RunnableLambda(_guarded, name="output_guardrail")


def with_structured_output_guards(
    runnable: Runnable,
    schema: type[SchemaT],
    *,
    max_retries: int = 2,
) -> Runnable:
    """Wrap a runnable so its output is redacted, parsed into ``schema`` and repaired on failure.

    A parse failure appends a correction notice to the input and retries, up
    to ``max_retries`` additional attempts. String inputs get the notice
    appended to the text; message lists get the failed answer and a human
    notice appended. Any other input shape is retried unchanged.

    Raises:
        GuardrailError: the output was still unparseable after the retries.
    """
    parser = PydanticOutputParser(pydantic_object=schema)
    return _guard_with_parser(runnable, parser, max_retries=max_retries)


def _guard_with_parser(
    runnable: Runnable,
    parser: PydanticOutputParser,
    *,
    max_retries: int,
) -> Runnable:
    schema_name = parser.pydantic_object.__name__

    def _guarded(input_: Any, config: RunnableConfig | None = None) -> Any:
        current = input_
        attempts = 0
        while True:
            attempts += 1
            raw = runnable.invoke(current, config)
            text = output_guardrail(extract_text(raw))
            try:
                return parser.parse(text)
            except (OutputParserException, ValidationError, ValueError) as exc:
                error = str(exc)[:_ERROR_PREVIEW_CHARS]
                if attempts > max_retries:
                    logger.error(
                        "guardrail.schema_exhausted",
                        schema=schema_name,
                        attempts=attempts,
                        error=error,
                    )
                    raise GuardrailError(
                        f"{schema_name} output failed validation after {attempts} attempts",
                        attempts=attempts,
                        last_error=error,
                    ) from exc
                logger.warning(
                    "guardrail.schema_retry",
                    schema=schema_name,
                    attempt=attempts,
                    max_retries=max_retries,
                    error=error,
                )
                current = _append_repair_notice(current, text, error)

    return RunnableLambda(_guarded, name=f"structured_guard[{schema_name}]")


def _append_repair_notice(current: Any, previous_output: str, error: str) -> Any:
    notice = _REPAIR_NOTICE.format(error=error)
    if isinstance(current, str):
        return f"{current}\n\n{notice}"
    if isinstance(current, list):
        return [*current, AIMessage(content=previous_output), HumanMessage(content=notice)]
    logger.info("guardrail.repair_input_unchanged", input_type=type(current).__name__)
    return current


class StructuredCompletion(Generic[SchemaT]):
    """A prompt template paired with the parser whose format instructions it embeds.

    The template must contain a ``{format_instructions}`` placeholder. Every
    attempt of the repair loop reuses the same parser, so the instructions the
    model sees always match the schema being parsed.
    """

    def __init__(self, schema: type[SchemaT], template: str, *, max_retries: int = 2) -> None:
        self.schema = schema
        self.parser = PydanticOutputParser(pydantic_object=schema)
        self.prompt = PromptTemplate.from_template(template)
        self.max_retries = max_retries

    def format(self, **values: Any) -> str:
        return self.prompt.format(
            format_instructions=self.parser.get_format_instructions(),
            **values,
        )

    def invoke(self, model: Runnable, **values: Any) -> SchemaT:
        guarded = _guard_with_parser(model, self.parser, max_retries=self.max_retries)
        return guarded.invoke(self.format(**values))
