"""Agent provider interface and the shared subprocess runner."""

from __future__ import annotations

import contextlib
import json
import shutil
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gtd.agents.events import AgentEvent
from gtd.errors import AgentError

INVOCATION_MODES = ("plan", "build", "learn", "commit", "explore")

EventCallback = Callable[[AgentEvent], None]


@dataclass
class AgentInvocation:
    """Everything a provider needs for one agent run."""

    prompt: str
    system_prompt: str = ""
    mode: str = "build"
    cwd: Path = field(default_factory=Path.cwd)
    on_event: EventCallback | None = None
    resume_session_id: str | None = None
    model: str | None = None
    # Set by guards (or callers) to tear the run down early
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def __post_init__(self) -> None:
        if self.mode not in INVOCATION_MODES:
            raise AgentError(
                f"Unknown invocation mode: '{self.mode}'. "
                f"Expected one of: {', '.join(INVOCATION_MODES)}"
            )


@dataclass
class AgentResult:
    """Outcome of a successful invocation."""

    session_id: str | None = None


class AgentProvider(ABC):
    """
    Capability interface every agent satisfies.

    Concrete providers are StreamingAgent instances configured per binary;
    FallbackAgent and GuardedAgent compose other providers.
    """

    name: str = "base"
    provider_type: str = "base"

    @abstractmethod
    def invoke(self, invocation: AgentInvocation) -> AgentResult:
        """
        Run the agent to completion.

        Raises:
            AgentError: On nonzero exit, missing binary or cancellation
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """True if the agent can be launched on this machine."""
        pass


def parse_json_line(line: str) -> dict[str, Any] | None:
    """Decode one line of a JSON event stream; None for anything else."""
    try:
        data = json.loads(line.strip())
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def prompt_on_stdin(invocation: AgentInvocation) -> str | None:
    return invocation.prompt


def no_stdin(invocation: AgentInvocation) -> str | None:
    return None


def no_session_id(line: str) -> str | None:
    return None


@dataclass
class ProviderSpec:
    """Pure functions describing how to drive one agent binary."""

    provider_type: str
    binary: str
    build_command: Callable[[AgentInvocation], list[str]]
    parse_event: Callable[[str], AgentEvent | None]
    build_stdin: Callable[[AgentInvocation], str | None] = prompt_on_stdin
    extract_session_id: Callable[[str], str | None] = no_session_id
    install_instructions: str = ""


class StreamingAgent(AgentProvider):
    """
    Runs an agent binary that writes newline-delimited JSON to stdout.

    stderr is inherited so the agent's own diagnostics stay visible.
    Events are delivered synchronously and in stream order.
    """

    # How often the watcher checks for cancellation
    CANCEL_POLL_SECONDS = 0.1

    def __init__(self, spec: ProviderSpec, name: str | None = None):
        self.spec = spec
        self.name = name or spec.provider_type
        self.provider_type = spec.provider_type

    def is_available(self) -> bool:
        return shutil.which(self.spec.binary) is not None

    def invoke(self, invocation: AgentInvocation) -> AgentResult:
        if invocation.cancel_event.is_set():
            raise AgentError(f"{self.name} invocation cancelled", agent_type=self.provider_type)

        cmd = self.spec.build_command(invocation)
        stdin_text = self.spec.build_stdin(invocation)

        try:
            process = subprocess.Popen(
                cmd,
                cwd=invocation.cwd,
                stdin=subprocess.PIPE if stdin_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,  # Line buffered
            )
        except FileNotFoundError:
            raise AgentError(
                f"{self.spec.binary} CLI not found. {self.spec.install_instructions}".strip(),
                agent_type=self.provider_type,
            ) from None

        def _feed_stdin() -> None:
            if process.stdin is None:
                return
            # The agent may exit before reading everything
            with contextlib.suppress(BrokenPipeError, OSError, ValueError):
                process.stdin.write(stdin_text or "")
            with contextlib.suppress(BrokenPipeError, OSError, ValueError):
                process.stdin.close()

        def _watch_cancel() -> None:
            while process.poll() is None:
                if invocation.cancel_event.wait(self.CANCEL_POLL_SECONDS):
                    with contextlib.suppress(OSError):
                        process.kill()
                    return

        threads = [
            threading.Thread(target=_feed_stdin, daemon=True),
            threading.Thread(target=_watch_cancel, daemon=True),
        ]
        for thread in threads:
            thread.start()

        session_id: str | None = None
        try:
            if process.stdout:
                for line in process.stdout:
                    if invocation.cancel_event.is_set():
                        break
                    if not line.strip():
                        continue

                    extracted = self.spec.extract_session_id(line)
                    if extracted:
                        session_id = extracted

                    event = self.spec.parse_event(line)
                    if event is not None and invocation.on_event:
                        try:
                            invocation.on_event(event)
                        except Exception as e:
                            # A broken callback must not stall the stream
                            print(
                                f"[{self.provider_type}] Event callback failed: {e}",
                                file=sys.stderr,
                            )
        finally:
            if invocation.cancel_event.is_set() and process.poll() is None:
                with contextlib.suppress(OSError):
                    process.kill()
            returncode = process.wait()
            for thread in threads:
                thread.join(timeout=1)
            if process.stdout:
                process.stdout.close()

        if invocation.cancel_event.is_set():
            raise AgentError(
                f"{self.name} invocation cancelled",
                returncode=returncode,
                agent_type=self.provider_type,
            )
        if returncode != 0:
            print(f"[{self.provider_type}] exited with code {returncode}", file=sys.stderr)
            raise AgentError(
                f"{self.name} exited with code {returncode}",
                returncode=returncode,
                agent_type=self.provider_type,
            )

        return AgentResult(session_id=session_id)
