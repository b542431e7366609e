"""HTTP + SSE frontend for the orchestrator."""
from agentgate.server.server import AgentGateServer

__all__ = ["AgentGateServer"]
