"""Top-level run: gather state, infer the step, dispatch one phase."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from gtd.agents.base import AgentProvider
from gtd.agents.factory import resolve_provider
from gtd.agents.guards import forbidden_tools_for, with_agent_guards
from gtd.config import GtdConfig
from gtd.context import WorkflowContext
from gtd.git import GitManager
from gtd.harvester import gather_state
from gtd.infer_step import InferStepInput, Step, describe_reason, infer_step
from gtd.notifications import Notifier, create_event_callback, create_notifier_from_config
from gtd.phases import PHASES, PhaseResult, run_guarded
from gtd.state import FileSessionStore, SessionStore


class WorkflowLogger:
    """Append-only run log kept under the repository's git directory."""

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)
        date = datetime.now().strftime("%Y%m%d")
        self.log_file = log_dir / f"gtd-{date}.log"
        self.json_log_file = log_dir / f"gtd-{date}.jsonl"
        self._entries: list[dict[str, Any]] = []

    def log(
        self,
        event: str,
        phase: str | None = None,
        data: dict[str, Any] | None = None,
        output: str | None = None,
    ) -> None:
        """Log an event with optional data and output."""
        entry = {
            "timestamp": datetime.now().isoformat(),
            "event": event,
            "phase": phase,
            "data": data or {},
        }
        if output:
            entry["output"] = output[:10000]  # Truncate very long outputs

        self._entries.append(entry)

        with open(self.log_file, "a", encoding="utf-8", errors="backslashreplace") as f:
            f.write(f"[{entry['timestamp']}] {event}")
            if phase:
                f.write(f" (phase: {phase})")
            f.write("\n")
            for k, v in (data or {}).items():
                f.write(f"  {k}: {v}\n")
            if output:
                f.write(f"--- Output ---\n{output}\n--- End Output ---\n")

        with open(self.json_log_file, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    @property
    def entries(self) -> list[dict[str, Any]]:
        return list(self._entries)


def create_agent_from_config(config: GtdConfig, provider: str | None = None) -> AgentProvider:
    """Resolve the configured provider and wrap it in guards."""
    agent = resolve_provider(provider or config.agent.provider)
    forbidden = forbidden_tools_for(agent, config.agent.forbidden_tools)
    return with_agent_guards(agent, config.agent.inactivity_timeout, forbidden)


class Workflow:
    """
    One gtd invocation against a repository.

    Each run re-derives the workflow position from git, so there is no
    state to resume beyond the session file.
    """

    def __init__(
        self,
        repo_path: Path,
        config: GtdConfig,
        agent: AgentProvider | None = None,
        sessions: SessionStore | None = None,
        notifier: Notifier | None = None,
        verbose: bool = False,
        quiet: bool = False,
    ):
        self.repo_path = repo_path
        self.config = config
        self.git = GitManager(repo_path)
        self.notifier = notifier or create_notifier_from_config(
            config, quiet=quiet, verbose=verbose
        )
        self.sessions = sessions or FileSessionStore.for_git_dir(self.git.git_dir)
        self.verbose = verbose
        self.logger = (
            WorkflowLogger(config.log_path(repo_path)) if config.logging.enabled else None
        )
        self._agent = agent

    @property
    def agent(self) -> AgentProvider:
        """Agent resolved on first use, so dry runs never look for binaries."""
        if self._agent is None:
            self._agent = create_agent_from_config(self.config)
        return self._agent

    def _log(self, event: str, data: dict[str, Any] | None = None) -> None:
        if self.logger is not None:
            self.logger.log(event, data=data)

    def infer(self) -> tuple[InferStepInput, Step, str]:
        """Observe the repository and decide what to do next."""
        state = gather_state(self.git, self.config.file)
        step = infer_step(state)
        reason = describe_reason(state, step)
        self._log(
            "step_inferred",
            data={
                "step": step.value,
                "reason": reason,
                "state": {
                    k: (v.value if hasattr(v, "value") else v) for k, v in vars(state).items()
                },
            },
        )
        return state, step, reason

    def dry_run(self) -> tuple[Step, str]:
        """Report the next step without invoking any agent."""
        _, step, reason = self.infer()
        return step, reason

    def _context(self) -> WorkflowContext:
        return WorkflowContext(
            repo_path=self.repo_path,
            config=self.config,
            git=self.git,
            agent=self.agent,
            sessions=self.sessions,
            notifier=self.notifier,
            logger=self.logger,
            on_event=create_event_callback(self.notifier) if self.verbose else None,
        )

    def dispatch(self, step: Step) -> PhaseResult:
        """Run the phase for ``step``."""
        if step is Step.IDLE:
            # Idle needs no agent
            return PHASES[step](self._idle_context()).run()

        context = self._context()
        phase = PHASES[step](context)
        context.current_phase = phase.name
        self.notifier.on_phase_started(phase.name)
        self._log("phase_started", data={"phase": phase.name})

        result = run_guarded(phase)

        self._log(
            "phase_finished",
            data={"phase": phase.name, "success": result.success, "commits": result.commits},
        )
        if result.success:
            self.notifier.on_phase_complete(phase.name, result)
        elif not result.aborted:
            self.notifier.on_phase_failed(phase.name, result)
        return result

    def _idle_context(self) -> WorkflowContext:
        context = WorkflowContext(
            repo_path=self.repo_path,
            config=self.config,
            git=self.git,
            agent=self._agent,  # type: ignore[arg-type]
            sessions=self.sessions,
            notifier=self.notifier,
            logger=self.logger,
        )
        context.current_phase = Step.IDLE.value
        return context

    def run(self) -> PhaseResult:
        """
        Advance the workflow by one step.

        Committing feedback is bookkeeping rather than progress, so it is
        followed by exactly one more inference and dispatch.
        """
        _, step, reason = self.infer()
        self.notifier.on_step_inferred(step, reason)
        result = self.dispatch(step)

        if step is Step.COMMIT_FEEDBACK and result.success:
            _, next_step, next_reason = self.infer()
            if next_step is Step.COMMIT_FEEDBACK:
                # Something keeps the tree dirty; do not loop
                return result
            self.notifier.on_step_inferred(next_step, next_reason)
            result = self.dispatch(next_step)

        return result
