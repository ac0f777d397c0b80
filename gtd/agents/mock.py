"""Scripted agent for tests."""

from __future__ import annotations

from collections.abc import Callable

from gtd.agents.base import AgentInvocation, AgentProvider, AgentResult
from gtd.agents.events import AgentEnd, AgentStart, TextDelta
from gtd.errors import AgentError


class MockAgent(AgentProvider):
    """
    Agent that answers from a table instead of running a binary.

    ``responses`` maps a prompt substring to the reply text, or to an
    AgentError to raise. ``actions`` maps a prompt substring to a callable
    run before replying, which is how tests make the "agent" edit files.
    The first matching key wins in both tables.
    """

    name = "mock"
    provider_type = "mock"

    def __init__(
        self,
        responses: dict[str, str | AgentError] | None = None,
        actions: dict[str, Callable[[AgentInvocation], None]] | None = None,
        default_reply: str = "Mock change",
        session_id: str | None = "mock-session-123",
    ):
        self.responses = responses or {}
        self.actions = actions or {}
        self.default_reply = default_reply
        self.session_id = session_id
        self.call_history: list[AgentInvocation] = []

    def is_available(self) -> bool:
        return True

    def invoke(self, invocation: AgentInvocation) -> AgentResult:
        """Record the call and return a scripted response."""
        self.call_history.append(invocation)

        for key, action in self.actions.items():
            if key in invocation.prompt:
                action(invocation)
                break

        reply: str | AgentError = self.default_reply
        for key, response in self.responses.items():
            if key in invocation.prompt:
                reply = response
                break

        if isinstance(reply, AgentError):
            raise reply

        if invocation.on_event:
            invocation.on_event(AgentStart())
            invocation.on_event(TextDelta(text=reply))
            invocation.on_event(AgentEnd())
        return AgentResult(session_id=self.session_id)

    def prompts_containing(self, text: str) -> list[str]:
        return [call.prompt for call in self.call_history if text in call.prompt]
