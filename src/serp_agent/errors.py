"""Exception types raised by the orchestration core."""

from __future__ import annotations


class GuardrailError(RuntimeError):
    """Structured output stayed unparseable after the repair budget was spent."""

    def __init__(self, message: str, *, attempts: int, last_error: str = "") -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ToolLoopExhaustedError(RuntimeError):
    """The model kept requesting tools past the configured iteration cap."""

    def __init__(self, iterations: int) -> None:
        super().__init__(
            f"Tool-calling loop did not finish after {iterations} model turns."
        )
        self.iterations = iterations


class RunCancelledError(RuntimeError):
    """The caller cancelled an in-flight orchestration run."""


class StoreError(RuntimeError):
    """The document store could not serve a request."""
