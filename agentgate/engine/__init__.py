"""agentgate engine: tool-calling loop with human approval and output chaining."""
from .models import (
    ApprovalDecision,
    ApprovalDecisionKind,
    ApprovalMode,
    ApprovalRequest,
    BufferedToolOutput,
    FinishReason,
    GenerateResult,
    Message,
    MessageRole,
    RunContext,
    RunOptions,
    ToolApprovalSettings,
    ToolCallRequest,
    ToolDefinition,
    ToolResult,
    WhitelistEntry,
)
from .config import EngineConfig
from .errors import (
    InvalidDecisionError,
    MaxToolIterationsError,
    OrchestrationError,
    ProviderError,
    RunInProgressError,
    ToolRegistrationError,
)
from .approval import ApprovalGate, ApprovalOutcome
from .approval_policy import (
    ApprovalPolicy,
    ApprovalSnapshot,
    InMemorySettingsStore,
    ToolApprovalSettingsStore,
)
from .output_buffer import ToolOutputBuffer
from .tool_registry import ToolRegistry

__all__ = [
    # Core engine (lazy import to avoid circular deps)
    "OrchestrationEngine",
    # Models
    "ApprovalDecision",
    "ApprovalDecisionKind",
    "ApprovalMode",
    "ApprovalRequest",
    "BufferedToolOutput",
    "FinishReason",
    "GenerateResult",
    "Message",
    "MessageRole",
    "RunContext",
    "RunOptions",
    "ToolApprovalSettings",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolResult",
    "WhitelistEntry",
    # Config
    "EngineConfig",
    # YAML config (lazy import)
    "AgentGateConfig",
    "load_yaml_config",
    # Approval
    "ApprovalGate",
    "ApprovalOutcome",
    "ApprovalPolicy",
    "ApprovalSnapshot",
    "InMemorySettingsStore",
    "ToolApprovalSettingsStore",
    # Tools
    "ToolOutputBuffer",
    "ToolRegistry",
    # Providers (lazy import)
    "LanguageModelProvider",
    "OpenAICompatibleProvider",
    # Errors
    "InvalidDecisionError",
    "MaxToolIterationsError",
    "OrchestrationError",
    "ProviderError",
    "RunInProgressError",
    "ToolRegistrationError",
]


def __getattr__(name: str):
    if name == "OrchestrationEngine":
        from .engine import OrchestrationEngine
        return OrchestrationEngine
    if name == "AgentGateConfig":
        from .yaml_config import AgentGateConfig
        return AgentGateConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "LanguageModelProvider":
        from .providers.base import LanguageModelProvider
        return LanguageModelProvider
    if name == "OpenAICompatibleProvider":
        from .providers.openai_compat import OpenAICompatibleProvider
        return OpenAICompatibleProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
