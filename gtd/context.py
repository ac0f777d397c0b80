"""Per-run workflow context shared by all phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gtd.harvester import read_plan

if TYPE_CHECKING:
    from gtd.agents.base import AgentProvider, EventCallback
    from gtd.config import GtdConfig
    from gtd.git import GitManager
    from gtd.notifications import Notifier
    from gtd.state import SessionStore
    from gtd.workflow import WorkflowLogger


@dataclass
class WorkflowContext:
    """
    Everything a phase needs for one gtd invocation.

    Collaborators are injected so tests can swap in fakes (an in-memory
    session store, a scripted agent).
    """

    repo_path: Path
    config: GtdConfig
    git: GitManager
    agent: AgentProvider
    sessions: SessionStore
    notifier: Notifier
    logger: WorkflowLogger | None = None
    on_event: EventCallback | None = None

    current_phase: str = "idle"
    commits: list[str] = field(default_factory=list)

    @property
    def plan_path(self) -> Path:
        return self.repo_path / self.config.file

    def read_plan(self) -> str:
        """Current plan file contents, "" if it does not exist."""
        return read_plan(self.repo_path, self.config.file)

    def plan_exists(self) -> bool:
        return self.plan_path.is_file()

    def log(
        self, event: str, data: dict[str, Any] | None = None, output: str | None = None
    ) -> None:
        if self.logger is not None:
            self.logger.log(event, phase=self.current_phase, data=data, output=output)

    def record_commit(self, message: str, sha: str) -> None:
        self.commits.append(sha)
        self.log("commit_made", data={"sha": sha, "message": message})
        self.notifier.on_commit(message, sha)
