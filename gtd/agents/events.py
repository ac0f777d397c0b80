"""Provider-neutral agent stream events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class AgentStart:
    pass


@dataclass(frozen=True)
class TurnStart:
    pass


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class TurnEnd:
    text: str = ""


@dataclass(frozen=True)
class ToolStart:
    tool_name: str


@dataclass(frozen=True)
class ToolEnd:
    tool_name: str
    is_error: bool = False


@dataclass(frozen=True)
class AgentEnd:
    pass


AgentEvent = Union[AgentStart, TurnStart, TextDelta, TurnEnd, ToolStart, ToolEnd, AgentEnd]
