"""Agent-generated commit messages."""

from __future__ import annotations

import sys
from pathlib import Path

from gtd.agents.base import AgentInvocation, AgentProvider
from gtd.agents.events import AgentEvent, TextDelta
from gtd.errors import AgentError
from gtd.prefixes import Marker
from gtd.prompts import COMMIT_MESSAGE_PROMPT, interpolate

MAX_LENGTH = 72


def summarize_reply(text: str) -> str:
    """First line of the agent's reply with surrounding quotes removed."""
    summary = text.strip()
    if summary[:1] in ("'", '"'):
        summary = summary[1:]
    if summary[-1:] in ("'", '"'):
        summary = summary[:-1]
    lines = summary.split("\n")
    return lines[0].strip() if lines else ""


def format_commit_message(marker: Marker, summary: str) -> str:
    """``"<glyph> <summary>"`` capped at MAX_LENGTH characters."""
    if not summary:
        return f"{marker.value} update"
    prefix = f"{marker.value} "
    return prefix + summary[: MAX_LENGTH - len(prefix)]


def generate_commit_message(
    agent: AgentProvider,
    marker: Marker,
    diff: str,
    cwd: Path,
    template: str = COMMIT_MESSAGE_PROMPT,
    model: str | None = None,
) -> str:
    """
    Ask the agent to summarize ``diff`` and prefix the result with ``marker``.

    Never raises for agent failures; falls back to ``"<glyph> update"``.
    """
    chunks: list[str] = []

    def on_event(event: AgentEvent) -> None:
        if isinstance(event, TextDelta):
            chunks.append(event.text)

    invocation = AgentInvocation(
        prompt=interpolate(template, {"diff": diff}),
        mode="commit",
        cwd=cwd,
        on_event=on_event,
        model=model,
    )
    try:
        agent.invoke(invocation)
    except AgentError as e:
        print(f"[gtd] Commit message generation failed: {e}", file=sys.stderr)
        return format_commit_message(marker, "")

    return format_commit_message(marker, summarize_reply("".join(chunks)))
