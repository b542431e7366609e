"""Exception hierarchy for the orchestration engine.

Specific exceptions for each failure mode. Tool execution errors are
not wrapped: they propagate to the caller of run() unchanged.
"""
from __future__ import annotations


class OrchestrationError(Exception):
    """Base exception for all orchestration errors."""


class ProviderError(OrchestrationError):
    """The language-model provider failed to produce a turn."""
    def __init__(self, provider_name: str, reason: str, status: int | None = None):
        self.provider_name = provider_name
        self.reason = reason
        self.status = status
        detail = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"Provider '{provider_name}' failed{detail}: {reason}")


class MaxToolIterationsError(OrchestrationError):
    """The model kept requesting tools past the iteration budget."""
    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(
            f"Run did not finish within {max_iterations} model turns"
        )


class RunInProgressError(OrchestrationError):
    """A second run was started on an engine that is already running."""
    def __init__(self) -> None:
        super().__init__("Orchestration already in progress")


class InvalidDecisionError(OrchestrationError):
    """An approval decision was malformed."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid approval decision: {reason}")


class ToolRegistrationError(OrchestrationError):
    """A tool or server could not be registered."""
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Cannot register '{name}': {reason}")
