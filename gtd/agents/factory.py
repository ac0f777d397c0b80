"""Registry of agent providers and "auto" resolution."""

from __future__ import annotations

import sys
from collections.abc import Callable

from gtd.agents.base import AgentInvocation, AgentProvider, AgentResult
from gtd.errors import AgentError, ConfigurationError

# Registry of provider factories keyed by provider id
PROVIDER_REGISTRY: dict[str, Callable[[], AgentProvider]] = {}

# Detection order for "auto"
PROVIDER_PRIORITY = ["pi", "opencode", "claude"]

AUTO = "auto"


def register_provider(provider_id: str, factory: Callable[[], AgentProvider]) -> None:
    """
    Register a provider factory.

    Args:
        provider_id: The provider identifier (e.g., "claude", "pi")
        factory: Zero-argument callable returning a provider
    """
    PROVIDER_REGISTRY[provider_id] = factory


def create_provider(provider_id: str) -> AgentProvider:
    """
    Create a provider by id.

    Raises:
        ConfigurationError: If the provider id is not registered
    """
    if provider_id not in PROVIDER_REGISTRY:
        available = ", ".join(PROVIDER_REGISTRY.keys())
        raise ConfigurationError(
            f"Unknown agent: '{provider_id}'. Available agents: {available}, {AUTO}"
        )
    return PROVIDER_REGISTRY[provider_id]()


def list_providers() -> list[str]:
    """All registered provider ids, in auto-detection order first."""
    ordered = [p for p in PROVIDER_PRIORITY if p in PROVIDER_REGISTRY]
    return ordered + [p for p in PROVIDER_REGISTRY if p not in ordered]


def detect_installed_providers() -> dict[str, bool]:
    """Map each registered provider id to whether its binary is installed."""
    installed = {}
    for provider_id in list_providers():
        try:
            installed[provider_id] = create_provider(provider_id).is_available()
        except Exception:
            installed[provider_id] = False
    return installed


class FallbackAgent(AgentProvider):
    """
    Tries each provider in order until one succeeds.

    The last AgentError propagates when every provider fails.
    """

    def __init__(self, providers: list[AgentProvider]):
        if not providers:
            raise ConfigurationError("FallbackAgent needs at least one provider")
        self.providers = providers
        self.name = f"{providers[0].name} ({AUTO})"
        self.provider_type = providers[0].provider_type

    def is_available(self) -> bool:
        return any(p.is_available() for p in self.providers)

    def invoke(self, invocation: AgentInvocation) -> AgentResult:
        *fallbacks, last = self.providers
        for provider in fallbacks:
            try:
                return provider.invoke(invocation)
            except AgentError as e:
                # A cancelled run must not start the next provider
                if invocation.cancel_event.is_set():
                    raise
                print(f"[gtd] {provider.name} failed: {e}", file=sys.stderr)
        # The last provider's error propagates unchanged
        return last.invoke(invocation)


def resolve_provider(name: str = AUTO) -> AgentProvider:
    """
    Pick the provider for ``name``.

    An explicit id is created directly. ``"auto"`` checks every provider in
    PROVIDER_PRIORITY and chains the installed ones.
    """
    if name != AUTO:
        return create_provider(name)

    available = []
    for provider_id in list_providers():
        provider = create_provider(provider_id)
        if provider.is_available():
            available.append(provider)

    if not available:
        raise ConfigurationError(
            "No agent found. Install one of: " + ", ".join(PROVIDER_PRIORITY)
        )
    return FallbackAgent(available)


def _register_default_providers() -> None:
    """Register the built-in providers."""
    from gtd.agents.claude import create_claude_agent
    from gtd.agents.opencode import create_opencode_agent
    from gtd.agents.pi import create_pi_agent

    register_provider("pi", create_pi_agent)
    register_provider("opencode", create_opencode_agent)
    register_provider("claude", create_claude_agent)


# Register default providers on module import
_register_default_providers()
