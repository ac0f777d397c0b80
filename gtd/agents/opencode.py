"""OpenCode CLI provider."""

from __future__ import annotations

from gtd.agents.base import AgentInvocation, ProviderSpec, StreamingAgent, parse_json_line
from gtd.agents.events import AgentEvent, TextDelta, ToolEnd, ToolStart, TurnEnd, TurnStart

CLI_COMMAND = "opencode"
INSTALL_INSTRUCTIONS = "Install with: npm install -g opencode-ai"


def build_opencode_command(invocation: AgentInvocation) -> list[str]:
    cmd = [CLI_COMMAND, "run", "--format", "json"]
    if invocation.model:
        cmd.extend(["--model", invocation.model])
    return cmd


def build_opencode_stdin(invocation: AgentInvocation) -> str:
    """opencode has no system prompt flag, so it is prepended to the prompt."""
    if invocation.system_prompt:
        return f"{invocation.system_prompt}\n\n{invocation.prompt}"
    return invocation.prompt


def parse_opencode_event(line: str) -> AgentEvent | None:
    data = parse_json_line(line)
    if data is None:
        return None

    event_type = data.get("type")
    part = data.get("part")
    if not isinstance(part, dict):
        part = {}

    if event_type == "step_start":
        return TurnStart()
    if event_type == "text":
        text = part.get("text")
        return TextDelta(text=text) if text else None
    if event_type == "tool_call":
        return ToolStart(tool_name=part.get("tool") or "unknown")
    if event_type == "tool_result":
        return ToolEnd(tool_name=part.get("tool") or "unknown", is_error=bool(part.get("error")))
    if event_type == "step_finish":
        return TurnEnd(text="")
    return None


OPENCODE_SPEC = ProviderSpec(
    provider_type="opencode",
    binary=CLI_COMMAND,
    build_command=build_opencode_command,
    parse_event=parse_opencode_event,
    build_stdin=build_opencode_stdin,
    install_instructions=INSTALL_INSTRUCTIONS,
)


def create_opencode_agent() -> StreamingAgent:
    return StreamingAgent(OPENCODE_SPEC)
