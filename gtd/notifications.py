"""Notification system for workflow events."""

from __future__ import annotations

import contextlib
import json
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from gtd.agents.events import AgentEvent, TextDelta, ToolEnd, ToolStart

if TYPE_CHECKING:
    from gtd.config import GtdConfig
    from gtd.errors import AgentError
    from gtd.infer_step import Step
    from gtd.phases import PhaseResult


class NotificationChannel(ABC):
    """Base class for notification channels."""

    @abstractmethod
    def send(self, message: str, level: str = "info", data: dict | None = None) -> bool:
        """Send a notification message."""
        pass


class ConsoleChannel(NotificationChannel):
    """Console output notification channel."""

    def __init__(self, colors: bool = True):
        self.colors = colors
        self._level_colors = {
            "info": "\033[36m",  # Cyan
            "success": "\033[32m",  # Green
            "warning": "\033[33m",  # Yellow
            "error": "\033[31m",  # Red
        }
        self._reset = "\033[0m"

    def send(self, message: str, level: str = "info", data: dict | None = None) -> bool:
        """Print notification to console."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        if self.colors:
            color = self._level_colors.get(level, "")
            prefix = f"{color}[{timestamp}]{self._reset}"
        else:
            prefix = f"[{timestamp}]"

        for line in message.strip().split("\n"):
            print(f"{prefix} {line}")

        return True


class WebhookChannel(NotificationChannel):
    """POSTs selected events as JSON to a URL."""

    def __init__(self, url: str, events: list[str] | None = None):
        self.url = url
        self.events = events or ["phase_complete", "phase_failed", "agent_aborted"]

    def send(
        self, message: str, level: str = "info", data: dict | None = None, event: str | None = None
    ) -> bool:
        """Send notification to webhook.

        Args:
            message: The notification message
            level: Severity level (info, success, warning, error)
            data: Additional structured data
            event: Event type for filtering (if None, always sends)

        Returns:
            True if sent successfully
        """
        if event is not None and event not in self.events:
            return True

        payload = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            "message": message,
            "data": data or {},
        }

        try:
            request = urllib.request.Request(
                self.url,
                data=json.dumps(payload).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            with urllib.request.urlopen(request, timeout=10) as response:
                return response.status == 200
        except OSError:
            return False


class Notifier:
    """
    Central notification dispatcher.

    Routes notifications to configured channels and provides
    convenience methods for the workflow's events.
    """

    def __init__(self, channels: list[NotificationChannel] | None = None, verbose: bool = False):
        self.channels = channels or []
        self.verbose = verbose

    def _send(
        self, message: str, level: str = "info", data: dict | None = None, event: str | None = None
    ) -> None:
        """Send a message to all channels."""
        for channel in self.channels:
            with contextlib.suppress(Exception):
                if isinstance(channel, WebhookChannel):
                    channel.send(message, level, data, event=event)
                else:
                    channel.send(message, level, data)

    def on_step_inferred(self, step: Step, reason: str) -> None:
        message = f"Next step: {step}"
        if self.verbose:
            message += f"\n{reason}"
        self._send(
            message,
            level="info",
            data={"step": str(step), "reason": reason},
            event="step_inferred",
        )

    def on_phase_started(self, phase: str) -> None:
        """Notify that a phase has started."""
        self._send(f"Starting {phase}...", level="info", event="phase_started")

    def on_phase_complete(self, phase: str, result: PhaseResult) -> None:
        """Notify that a phase completed successfully."""
        message = result.message or f"Phase complete: {phase}"
        self._send(
            message,
            level="success",
            data={"phase": phase, "commits": result.commits},
            event="phase_complete",
        )

    def on_phase_failed(self, phase: str, result: PhaseResult) -> None:
        """Notify that a phase stopped without finishing."""
        error_preview = (result.error or "no error message")[:200]
        self._send(
            f"Phase failed: {phase}\nError: {error_preview}",
            level="error",
            data={"phase": phase, "error": result.error},
            event="phase_failed",
        )

    def on_agent_aborted(self, phase: str, error: AgentError) -> None:
        """A guard stopped the agent; the run ends without a commit."""
        self._send(
            f"Agent aborted during {phase}: {error}",
            level="warning",
            data={"phase": phase, "reason": error.reason.value},
            event="agent_aborted",
        )

    def on_commit(self, message: str, sha: str) -> None:
        self._send(f"Committed {sha[:8]} {message}", level="success", event="commit")

    def on_idle(self, message: str) -> None:
        self._send(message, level="info", event="idle")

    def on_agent_event(self, event: AgentEvent, truncate_length: int = 200) -> None:
        """Render a streaming agent event in verbose mode."""
        if isinstance(event, ToolStart):
            self._send(f"  Using tool: {event.tool_name}", level="info")
        elif isinstance(event, ToolEnd) and event.is_error:
            self._send(f"  Tool failed: {event.tool_name}", level="warning")
        elif isinstance(event, TextDelta):
            preview = event.text.strip()[:truncate_length]
            if len(event.text.strip()) > truncate_length:
                preview += "..."
            if preview:
                self._send(f"  {preview}", level="info")


def create_event_callback(
    notifier: Notifier,
    truncate_length: int = 200,
) -> Callable[[AgentEvent], None]:
    """Create an agent event callback from a notifier."""

    def callback(event: AgentEvent) -> None:
        notifier.on_agent_event(event, truncate_length)

    return callback


def create_notifier_from_config(
    config: GtdConfig, quiet: bool = False, verbose: bool = False
) -> Notifier:
    """Create a Notifier from configuration."""
    channels: list[NotificationChannel] = []

    console = config.notifications.console
    if console.enabled and not quiet:
        channels.append(ConsoleChannel(colors=console.colors))

    webhook = config.notifications.webhook
    if webhook.enabled and webhook.url:
        channels.append(WebhookChannel(url=webhook.url, events=webhook.events))

    return Notifier(channels, verbose=verbose)
