"""Inactivity and forbidden-tool guards around any agent provider."""

from __future__ import annotations

import dataclasses
import sys
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from gtd.agents.base import AgentInvocation, AgentProvider, AgentResult
from gtd.agents.events import AgentEvent, ToolStart
from gtd.errors import AgentError, AgentErrorReason

# Tools that block on a human answer. A headless run can never satisfy them.
FORBIDDEN_TOOLS: dict[str, list[str]] = {
    "pi": [],
    "opencode": ["question"],
    "claude": ["AskUserQuestion"],
}

MAX_POLL_SECONDS = 5.0
# How long a cancelled invocation gets to tear its subprocess down
CANCEL_GRACE_SECONDS = 5.0


def forbidden_tools_for(provider: AgentProvider, configured: list[str] | None = None) -> list[str]:
    """Configured tools plus the built-in list for every provider in the chain."""
    tools = list(configured or [])
    chain = getattr(provider, "providers", None) or [provider]
    for member in chain:
        for tool in FORBIDDEN_TOOLS.get(member.provider_type, []):
            if tool not in tools:
                tools.append(tool)
    return tools


@dataclasses.dataclass
class _Activity:
    last_event: float
    violation: str | None = None


class GuardedAgent(AgentProvider):
    """
    Runs the wrapped provider on a worker thread and watches its events.

    The caller thread polls the worker. Whichever fires first (completion,
    inactivity or a forbidden tool) decides the outcome, and the other side
    is cancelled through the invocation's cancel event.
    """

    def __init__(
        self,
        inner: AgentProvider,
        inactivity_timeout: float,
        forbidden_tools: list[str],
    ):
        self.inner = inner
        self.inactivity_timeout = inactivity_timeout
        self.forbidden_tools = list(forbidden_tools)
        self.name = inner.name
        self.provider_type = inner.provider_type

    @property
    def providers(self) -> list[AgentProvider]:
        return getattr(self.inner, "providers", None) or [self.inner]

    def is_available(self) -> bool:
        return self.inner.is_available()

    @property
    def poll_interval(self) -> float:
        if self.inactivity_timeout > 0:
            return min(self.inactivity_timeout, MAX_POLL_SECONDS)
        return MAX_POLL_SECONDS

    def _forbidden_error(self, tool: str) -> AgentError:
        return AgentError(
            f"Agent invoked forbidden tool: {tool}",
            reason=AgentErrorReason.INPUT_REQUESTED,
            agent_type=self.provider_type,
        )

    def _timeout_error(self) -> AgentError:
        return AgentError(
            f"Agent timed out after {self.inactivity_timeout:g}s of inactivity",
            reason=AgentErrorReason.INACTIVITY_TIMEOUT,
            agent_type=self.provider_type,
        )

    def invoke(self, invocation: AgentInvocation) -> AgentResult:
        activity = _Activity(last_event=time.monotonic())

        def on_event(event: AgentEvent) -> None:
            activity.last_event = time.monotonic()
            if (
                activity.violation is None
                and isinstance(event, ToolStart)
                and event.tool_name in self.forbidden_tools
            ):
                activity.violation = event.tool_name
                invocation.cancel_event.set()
            if invocation.on_event:
                invocation.on_event(event)

        guarded = dataclasses.replace(invocation, on_event=on_event)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gtd-agent")
        future = executor.submit(self.inner.invoke, guarded)

        try:
            while True:
                done, _ = wait([future], timeout=self.poll_interval, return_when=FIRST_COMPLETED)

                if activity.violation is not None:
                    self._cancel(invocation, future)
                    raise self._forbidden_error(activity.violation)

                if done:
                    break

                idle = time.monotonic() - activity.last_event
                if self.inactivity_timeout > 0 and idle >= self.inactivity_timeout:
                    self._cancel(invocation, future)
                    raise self._timeout_error()

            result = future.result()
            # The stream may finish before the poll loop sees the violation
            if activity.violation is not None:
                raise self._forbidden_error(activity.violation)
            return result
        finally:
            executor.shutdown(wait=False)

    def _cancel(self, invocation: AgentInvocation, future: Future) -> None:
        invocation.cancel_event.set()
        done, _ = wait([future], timeout=CANCEL_GRACE_SECONDS)
        if not done:
            print(
                f"[gtd] {self.name} did not stop within {CANCEL_GRACE_SECONDS:g}s of cancellation",
                file=sys.stderr,
            )


def with_agent_guards(
    provider: AgentProvider,
    inactivity_timeout_seconds: float,
    forbidden_tools: list[str],
) -> AgentProvider:
    """Wrap ``provider`` in guards, or return it unchanged if both are off."""
    if inactivity_timeout_seconds <= 0 and not forbidden_tools:
        return provider
    return GuardedAgent(provider, inactivity_timeout_seconds, forbidden_tools)
