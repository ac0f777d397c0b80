"""Agent providers: one interface over several coding agent CLIs."""

from gtd.agents.base import (
    AgentInvocation,
    AgentProvider,
    AgentResult,
    ProviderSpec,
    StreamingAgent,
)
from gtd.agents.events import (
    AgentEnd,
    AgentEvent,
    AgentStart,
    TextDelta,
    ToolEnd,
    ToolStart,
    TurnEnd,
    TurnStart,
)
from gtd.agents.factory import (
    PROVIDER_PRIORITY,
    PROVIDER_REGISTRY,
    FallbackAgent,
    create_provider,
    detect_installed_providers,
    list_providers,
    register_provider,
    resolve_provider,
)
from gtd.agents.guards import (
    FORBIDDEN_TOOLS,
    GuardedAgent,
    forbidden_tools_for,
    with_agent_guards,
)
from gtd.agents.mock import MockAgent

__all__ = [
    # Interface
    "AgentInvocation",
    "AgentProvider",
    "AgentResult",
    "ProviderSpec",
    "StreamingAgent",
    # Events
    "AgentEvent",
    "AgentStart",
    "TurnStart",
    "TextDelta",
    "TurnEnd",
    "ToolStart",
    "ToolEnd",
    "AgentEnd",
    # Resolution
    "PROVIDER_PRIORITY",
    "PROVIDER_REGISTRY",
    "FallbackAgent",
    "create_provider",
    "detect_installed_providers",
    "list_providers",
    "register_provider",
    "resolve_provider",
    # Guards
    "FORBIDDEN_TOOLS",
    "GuardedAgent",
    "forbidden_tools_for",
    "with_agent_guards",
    # Testing
    "MockAgent",
]
