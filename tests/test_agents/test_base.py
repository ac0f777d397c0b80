"""Tests for the shared streaming agent runner."""

from __future__ import annotations

import sys
import textwrap
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from gtd.agents.base import (
    AgentInvocation,
    AgentResult,
    ProviderSpec,
    StreamingAgent,
    no_stdin,
    parse_json_line,
)
from gtd.agents.events import AgentEvent, TextDelta, ToolStart
from gtd.errors import AgentError, AgentErrorReason

# Echoes stdin back as a text event, then reports a session id
ECHO_SCRIPT = textwrap.dedent(
    """
    import json, sys
    data = sys.stdin.read()
    print(json.dumps({"text": data}), flush=True)
    print("not json", flush=True)
    print(json.dumps({"session": "sess-42"}), flush=True)
    """
)

FAIL_SCRIPT = textwrap.dedent(
    """
    import json, sys
    print(json.dumps({"text": "partial"}), flush=True)
    sys.exit(3)
    """
)

HANG_SCRIPT = textwrap.dedent(
    """
    import json, sys, time
    print(json.dumps({"tool": "AskUserQuestion"}), flush=True)
    time.sleep(30)
    """
)


def parse_test_event(line: str) -> AgentEvent | None:
    data = parse_json_line(line)
    if data is None:
        return None
    if "text" in data:
        return TextDelta(text=data["text"])
    if "tool" in data:
        return ToolStart(tool_name=data["tool"])
    return None


def extract_test_session(line: str) -> str | None:
    data = parse_json_line(line)
    return data.get("session") if data else None


def script_agent(script: str, **overrides) -> StreamingAgent:
    spec = ProviderSpec(
        provider_type="script",
        binary=sys.executable,
        build_command=lambda invocation: [sys.executable, "-c", script],
        parse_event=parse_test_event,
        extract_session_id=extract_test_session,
        **overrides,
    )
    return StreamingAgent(spec)


class TestParseJsonLine:
    """Tests for parse_json_line."""

    def test_object(self):
        """Test a JSON object line."""
        assert parse_json_line('{"a": 1}\n') == {"a": 1}

    def test_non_objects(self):
        """Test that arrays, scalars and text are rejected."""
        assert parse_json_line("[1]") is None
        assert parse_json_line("3") is None
        assert parse_json_line("hello") is None


class TestAgentInvocation:
    """Tests for AgentInvocation defaults."""

    def test_defaults(self):
        """Test default field values."""
        invocation = AgentInvocation(prompt="p")
        assert invocation.mode == "build"
        assert invocation.resume_session_id is None
        assert invocation.cancel_event.is_set() is False

    def test_cancel_events_are_independent(self):
        """Test that each invocation gets its own cancel event."""
        first = AgentInvocation(prompt="a")
        second = AgentInvocation(prompt="b")
        assert first.cancel_event is not second.cancel_event

    def test_unknown_mode(self):
        """Test that a mode outside the known set is rejected."""
        with pytest.raises(AgentError, match="Unknown invocation mode: 'deploy'"):
            AgentInvocation(prompt="p", mode="deploy")


class TestStreamingAgent:
    """Tests for StreamingAgent against real subprocesses."""

    def test_events_in_order_and_session(self, tmp_path: Path):
        """Test stdin delivery, event order and session extraction."""
        events = []
        agent = script_agent(ECHO_SCRIPT)

        result = agent.invoke(
            AgentInvocation(prompt="hello agent", cwd=tmp_path, on_event=events.append)
        )

        assert result == AgentResult(session_id="sess-42")
        assert events == [TextDelta(text="hello agent")]

    def test_no_stdin(self, tmp_path: Path):
        """Test providers that pass the prompt as an argument."""
        events = []
        agent = script_agent(ECHO_SCRIPT, build_stdin=no_stdin)

        agent.invoke(AgentInvocation(prompt="ignored", cwd=tmp_path, on_event=events.append))

        assert events == [TextDelta(text="")]

    def test_nonzero_exit(self, tmp_path: Path, capsys):
        """Test that a failing agent raises with its exit code."""
        agent = script_agent(FAIL_SCRIPT)

        with pytest.raises(AgentError) as exc_info:
            agent.invoke(AgentInvocation(prompt="p", cwd=tmp_path))

        assert exc_info.value.returncode == 3
        assert exc_info.value.reason is AgentErrorReason.GENERAL
        assert "[script] exited with code 3" in capsys.readouterr().err

    def test_callback_errors_are_reported(self, tmp_path: Path, capsys):
        """Test that a broken callback is reported and does not break the stream."""

        def explode(event):
            raise RuntimeError("callback bug")

        result = script_agent(ECHO_SCRIPT).invoke(
            AgentInvocation(prompt="p", cwd=tmp_path, on_event=explode)
        )

        assert result.session_id == "sess-42"
        assert "[script] Event callback failed: callback bug" in capsys.readouterr().err

    def test_cancel_from_callback(self, tmp_path: Path):
        """Test that setting the cancel event kills a hanging agent."""
        invocation = AgentInvocation(prompt="p", cwd=tmp_path)
        invocation.on_event = lambda event: invocation.cancel_event.set()

        started = time.monotonic()
        with pytest.raises(AgentError, match="cancelled"):
            script_agent(HANG_SCRIPT).invoke(invocation)

        assert time.monotonic() - started < 10

    def test_already_cancelled(self, tmp_path: Path):
        """Test that a cancelled invocation never starts a process."""
        invocation = AgentInvocation(prompt="p", cwd=tmp_path)
        invocation.cancel_event.set()

        with patch("gtd.agents.base.subprocess.Popen") as mock_popen:
            with pytest.raises(AgentError, match="cancelled"):
                script_agent(ECHO_SCRIPT).invoke(invocation)

        mock_popen.assert_not_called()

    def test_missing_binary(self, tmp_path: Path):
        """Test that a missing CLI raises with install instructions."""
        spec = ProviderSpec(
            provider_type="ghost",
            binary="gtd-ghost-agent",
            build_command=lambda invocation: ["gtd-ghost-agent"],
            parse_event=parse_test_event,
            install_instructions="Install the ghost.",
        )

        with pytest.raises(AgentError, match="gtd-ghost-agent CLI not found. Install the ghost."):
            StreamingAgent(spec).invoke(AgentInvocation(prompt="p", cwd=tmp_path))

    def test_is_available(self):
        """Test binary detection on PATH."""
        agent = script_agent(ECHO_SCRIPT)
        with patch("gtd.agents.base.shutil.which", return_value=None):
            assert agent.is_available() is False
        with patch("gtd.agents.base.shutil.which", return_value="/usr/bin/x"):
            assert agent.is_available() is True

    def test_name_defaults_to_provider_type(self):
        """Test display names."""
        assert script_agent(ECHO_SCRIPT).name == "script"
        spec = script_agent(ECHO_SCRIPT).spec
        assert StreamingAgent(spec, name="custom").name == "custom"
