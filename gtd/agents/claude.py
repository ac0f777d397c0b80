"""Claude Code CLI provider."""

from __future__ import annotations

from gtd.agents.base import AgentInvocation, ProviderSpec, StreamingAgent, parse_json_line
from gtd.agents.events import AgentEnd, AgentEvent, AgentStart, TextDelta, ToolStart

CLI_COMMAND = "claude"
INSTALL_INSTRUCTIONS = "Install with: npm install -g @anthropic-ai/claude-code"


def build_claude_command(invocation: AgentInvocation) -> list[str]:
    """Build the claude CLI command. The prompt itself goes over stdin."""
    cmd = [CLI_COMMAND]

    if invocation.resume_session_id:
        cmd.extend(["--resume", invocation.resume_session_id])

    cmd.extend(["-p", "--verbose", "--output-format", "stream-json", "--include-partial-messages"])

    # A resumed session already carries its system prompt
    if invocation.system_prompt and not invocation.resume_session_id:
        cmd.extend(["--system-prompt", invocation.system_prompt])

    if invocation.model:
        cmd.extend(["--model", invocation.model])

    cmd.append("--dangerously-skip-permissions")
    return cmd


def parse_claude_event(line: str) -> AgentEvent | None:
    """Map one stream-json line onto an agent event."""
    data = parse_json_line(line)
    if data is None:
        return None

    event_type = data.get("type")

    if event_type == "system":
        return AgentStart() if data.get("subtype") == "init" else None

    if event_type == "assistant":
        message = data.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return None

        blocks = [b for b in content if isinstance(b, dict)]
        for block in blocks:
            if block.get("type") == "tool_use":
                return ToolStart(tool_name=block.get("name") or "unknown")

        text = "".join(str(b.get("text", "")) for b in blocks if b.get("type") == "text")
        return TextDelta(text=text) if text else None

    if event_type == "result":
        return AgentEnd()

    return None


def extract_claude_session_id(line: str) -> str | None:
    """Session id from the terminal ``result`` event."""
    data = parse_json_line(line)
    if data is None or data.get("type") != "result":
        return None
    session_id = data.get("session_id")
    return session_id if isinstance(session_id, str) else None


CLAUDE_SPEC = ProviderSpec(
    provider_type="claude",
    binary=CLI_COMMAND,
    build_command=build_claude_command,
    parse_event=parse_claude_event,
    extract_session_id=extract_claude_session_id,
    install_instructions=INSTALL_INSTRUCTIONS,
)


def create_claude_agent() -> StreamingAgent:
    return StreamingAgent(CLAUDE_SPEC)
