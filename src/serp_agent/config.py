"""Configuration models for the SERP query orchestrator."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configures the chat/embedding models and per-call limits."""

    model_name: str = "gpt-4o"
    fast_model_name: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_retries: int = Field(default=1, ge=0)
    embedding_model: str = "text-embedding-3-small"


class GuardrailConfig(BaseModel):
    """Configures the schema-repair budget for structured completions."""

    max_retries: int = Field(default=2, ge=0)


class RetrievalConfig(BaseModel):
    """Configures store lookups made by tools and path executors."""

    search_limit: int = Field(default=10, ge=1)
    top_performers_limit: int = Field(default=10, ge=1)
    serp_features_limit: int = Field(default=20, ge=1)
    cluster_data_limit: int = Field(default=50, ge=1)
    content_analysis_limit: int = Field(default=100, ge=1)
    position_threshold: int = Field(default=10, ge=1)
    cluster_similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    strategy_document_limit: int = Field(default=100, ge=1)
    comparison_topic_k: int = Field(default=5, ge=1)
    comparison_period_limit: int = Field(default=20, ge=1)


class AgentConfig(BaseModel):
    """Configures the tool-calling loop and latency targets."""

    max_iterations: int = Field(default=6, ge=1)
    parallel_tool_calls: bool = False
    target_latency_seconds: float = Field(default=8.0, gt=0.0)
