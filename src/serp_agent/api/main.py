"""FastAPI entrypoint for chat, trace and metrics endpoints."""

from __future__ import annotations

import os
from dataclasses import asdict
from typing import Any, Literal

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from serp_agent.agent.planner import SerpQueryPlanner
from serp_agent.config import ModelConfig
from serp_agent.errors import (
    GuardrailError,
    RunCancelledError,
    StoreError,
    ToolLoopExhaustedError,
)
from serp_agent.obs.logging import configure_logging
from serp_agent.obs.tracing import TraceStore
from serp_agent.retrieval.store import InMemorySerpStore, SerpDocumentStore
from serp_agent.types import ConversationMessage

logger = structlog.get_logger(__name__)


def _model_config() -> ModelConfig:
    defaults = ModelConfig()
    return ModelConfig(
        model_name=os.getenv("OPENAI_MODEL", defaults.model_name),
        fast_model_name=os.getenv("OPENAI_FAST_MODEL", defaults.fast_model_name),
        request_timeout_seconds=float(
            os.getenv("LLM_TIMEOUT_SECONDS", defaults.request_timeout_seconds)
        ),
    )


def _create_models(config: ModelConfig) -> tuple[Any, Any] | None:
    if not os.getenv("OPENAI_API_KEY"):
        return None

    from langchain_openai import ChatOpenAI

    def _chat(model_name: str) -> Any:
        return ChatOpenAI(
            model=model_name,
            temperature=config.temperature,
            timeout=config.request_timeout_seconds,
            max_retries=config.max_retries,
        )

    return _chat(config.model_name), _chat(config.fast_model_name)


def _create_store(config: ModelConfig) -> SerpDocumentStore:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not (url and key and os.getenv("OPENAI_API_KEY")):
        logger.warning("api.store_in_memory", reason="Supabase or OpenAI credentials missing")
        return InMemorySerpStore()

    from langchain_openai import OpenAIEmbeddings

    from serp_agent.retrieval.supabase_store import SupabaseSerpStore

    return SupabaseSerpStore(
        url=url,
        key=key,
        embeddings=OpenAIEmbeddings(model=config.embedding_model),
        timeout_seconds=config.request_timeout_seconds,
    )


def _create_planner(trace_store: TraceStore) -> SerpQueryPlanner | None:
    config = _model_config()
    models = _create_models(config)
    if models is None:
        return None
    model, fast_model = models
    return SerpQueryPlanner(
        model=model,
        fast_model=fast_model,
        store=_create_store(config),
        trace_store=trace_store,
    )


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    query: str = ""
    history: list[HistoryMessage] = Field(default_factory=list)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _describe_validation_errors(exc: RequestValidationError) -> str:
    """Render each error as ``field.path: message`` with the ``body`` prefix dropped."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location or 'body'}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def create_app(planner: SerpQueryPlanner | None = None) -> FastAPI:
    """Build the API around ``planner``, or around one configured from the environment."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    trace_store = planner.trace_store if planner is not None else TraceStore()
    if planner is None:
        planner = _create_planner(trace_store)

    app = FastAPI(title="SERP Insights Agent", version="0.1.0")

    @app.exception_handler(RequestValidationError)
    async def invalid_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _failure(400, f"Invalid request: {_describe_validation_errors(exc)}")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": planner is not None,
            "store": type(planner.store).__name__ if planner is not None else None,
            "trace_count": len(trace_store.list_recent(limit=1000)),
        }

    @app.post("/chat")
    def chat(request: ChatRequest) -> Any:
        if not request.query.strip():
            return _failure(400, "Query is required")
        if planner is None:
            return _failure(503, "LLM is not configured (set OPENAI_API_KEY)")

        history = [
            ConversationMessage(role=message.role, content=message.content)
            for message in request.history
        ]
        try:
            response = planner.answer(request.query, history)
        except GuardrailError as exc:
            return _failure(502, f"Model output failed validation: {exc}")
        except ToolLoopExhaustedError as exc:
            return _failure(500, str(exc))
        except RunCancelledError as exc:
            return _failure(503, str(exc))
        except StoreError as exc:
            return _failure(500, str(exc))
        except Exception as exc:
            logger.exception("api.chat_failed")
            return _failure(500, str(exc) or "Internal error")
        return {"success": True, "data": response.to_dict()}

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return trace_store.summary()

    return app


app = create_app()
