"""Custom exceptions for gtd."""

from __future__ import annotations

from enum import Enum


class AgentErrorReason(Enum):
    """Why an agent invocation failed."""

    GENERAL = "general"
    INACTIVITY_TIMEOUT = "inactivity_timeout"  # No events for too long
    INPUT_REQUESTED = "input_requested"  # Agent reached for an interactive tool


class GtdError(Exception):
    """Base exception for all gtd errors."""

    pass


class ConfigurationError(GtdError):
    """Raised when configuration is invalid."""

    pass


class GitOperationError(GtdError):
    """Raised when git operations fail."""

    def __init__(self, operation: str, error: str, returncode: int = 1):
        super().__init__(f"Git {operation} failed: {error}")
        self.operation = operation
        self.error = error
        self.returncode = returncode


class AgentError(GtdError):
    """Raised when an agent invocation fails."""

    def __init__(
        self,
        message: str,
        reason: AgentErrorReason = AgentErrorReason.GENERAL,
        returncode: int | None = None,
        agent_type: str = "unknown",
    ):
        super().__init__(message)
        self.reason = reason
        self.returncode = returncode
        self.agent_type = agent_type

    @property
    def is_recoverable(self) -> bool:
        """Guard-detected failures are expected in headless runs."""
        return self.reason in (
            AgentErrorReason.INACTIVITY_TIMEOUT,
            AgentErrorReason.INPUT_REQUESTED,
        )
