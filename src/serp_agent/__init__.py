"""SERP insights agent package."""

from .config import AgentConfig, GuardrailConfig, ModelConfig, RetrievalConfig

__all__ = ["AgentConfig", "GuardrailConfig", "ModelConfig", "RetrievalConfig"]
