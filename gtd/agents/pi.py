"""pi coding agent provider."""

from __future__ import annotations

from gtd.agents.base import (
    AgentInvocation,
    ProviderSpec,
    StreamingAgent,
    no_stdin,
    parse_json_line,
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

CLI_COMMAND = "pi"
INSTALL_INSTRUCTIONS = "Install with: npm install -g @mariozechner/pi-coding-agent"


def build_pi_command(invocation: AgentInvocation) -> list[str]:
    """pi takes the prompt as its final argument and never resumes sessions."""
    cmd = [CLI_COMMAND, "-p", "--mode", "json", "--no-session"]
    if invocation.model:
        cmd.extend(["--model", invocation.model])
    if invocation.system_prompt:
        cmd.extend(["--append-system-prompt", invocation.system_prompt])
    cmd.append(invocation.prompt)
    return cmd


def _turn_text(data: dict) -> str:
    message = data.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, list):
        return ""
    return "".join(
        str(block.get("text", ""))
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    )


def parse_pi_event(line: str) -> AgentEvent | None:
    data = parse_json_line(line)
    if data is None:
        return None

    event_type = data.get("type")

    if event_type == "agent_start":
        return AgentStart()
    if event_type == "agent_end":
        return AgentEnd()
    if event_type == "turn_start":
        return TurnStart()
    if event_type == "turn_end":
        return TurnEnd(text=_turn_text(data))
    if event_type == "message_update":
        update = data.get("assistantMessageEvent")
        if isinstance(update, dict) and update.get("type") == "text_delta" and update.get("delta"):
            return TextDelta(text=update["delta"])
        return None
    if event_type == "tool_execution_start":
        return ToolStart(tool_name=data.get("toolName") or "unknown")
    if event_type == "tool_execution_end":
        return ToolEnd(
            tool_name=data.get("toolName") or "unknown",
            is_error=bool(data.get("isError")),
        )
    return None


PI_SPEC = ProviderSpec(
    provider_type="pi",
    binary=CLI_COMMAND,
    build_command=build_pi_command,
    parse_event=parse_pi_event,
    build_stdin=no_stdin,
    install_instructions=INSTALL_INSTRUCTIONS,
)


def create_pi_agent() -> StreamingAgent:
    return StreamingAgent(PI_SPEC)
