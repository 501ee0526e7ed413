"""Classifies the current chat query into one of the three execution paths."""

from __future__ import annotations

from collections.abc import Sequence

import structlog
from langchain_core.runnables import Runnable
from pydantic import BaseModel, Field

from serp_agent.agent.guardrails import StructuredCompletion
from serp_agent.agent.prompts import ROUTER_PROMPT_TEMPLATE
from serp_agent.types import ConversationMessage, QueryRoute, RouterDecision

logger = structlog.get_logger(__name__)


class RouteClassification(BaseModel):
    intent: QueryRoute
    explanation: str = Field(description="One short sentence explaining the choice.")


class QueryRouter:
    def __init__(self, model: Runnable, *, max_retries: int = 2) -> None:
        self.model = model
        self._completion = StructuredCompletion(
            RouteClassification, ROUTER_PROMPT_TEMPLATE, max_retries=max_retries
        )

    def classify(
        self,
        query: str,
        history: Sequence[ConversationMessage] | None = None,
    ) -> RouterDecision:
        """Pick STRATEGY, COMPARISON or STANDARD; any failure routes to STANDARD."""
        try:
            parsed = self._completion.invoke(
                self.model,
                query=query,
                history_context=_history_block(history),
            )
        except Exception as exc:
            logger.warning("router.fallback", error=str(exc))
            return RouterDecision(
                intent=QueryRoute.STANDARD,
                explanation="Router classification failed; using the general tool-calling path.",
            )

        logger.info("router.decision", route=parsed.intent.value, explanation=parsed.explanation)
        return RouterDecision(intent=parsed.intent, explanation=parsed.explanation)


def _history_block(history: Sequence[ConversationMessage] | None) -> str:
    if not history:
        return "(no previous messages)"
    return "\n".join(f"{message.role.upper()}: {message.content}" for message in history)
