"""Workflow phases for gtd."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gtd.agents.base import AgentInvocation, AgentResult
from gtd.commands import find_newly_added_todos, remove_todo_lines, run_command
from gtd.commit_message import generate_commit_message
from gtd.diff_classifier import classify_diff, classify_prefix
from gtd.errors import AgentError, AgentErrorReason, GitOperationError
from gtd.infer_step import Step
from gtd.plan import (
    Package,
    check_off_package,
    detect_state,
    extract_learnings,
    format_package_prompt,
    has_learnings_section,
    has_unchecked_items,
    next_unchecked_package,
    parse_packages,
)
from gtd.prefixes import Marker, marker_label
from gtd.prompts import (
    BUILD_PROMPT,
    EXPLORE_PROMPT,
    LEARN_PROMPT,
    PLAN_PROMPT,
    TEST_FAILURE_SECTION,
    TEST_FIX_PROMPT,
    TODO_COMMENTS_BLOCK,
    interpolate,
)

if TYPE_CHECKING:
    from gtd.context import WorkflowContext

IDLE_MESSAGE = "Nothing to do. Create a TODO.md or add in-code comments to start."

# Lowest priority first, so the last commit carries the marker that drives the next step
FEEDBACK_COMMIT_ORDER = (Marker.FIX, Marker.HUMAN, Marker.FEEDBACK, Marker.SEED)


@dataclass
class PhaseResult:
    """Result from executing a phase."""

    success: bool
    message: str = ""
    error: str | None = None
    commits: list[str] = field(default_factory=list)
    session_id: str | None = None
    aborted: bool = False
    artifacts: dict[str, Any] = field(default_factory=dict)


class Phase(ABC):
    """
    Base class for workflow phases.

    Each phase advances the workflow by one step and records its progress
    as commits tagged with ``marker``.
    """

    name: str = "base"
    marker: Marker | None = None
    mode: str = "build"  # Agent invocation mode, selects the model

    def __init__(self, context: WorkflowContext):
        self.context = context
        self.config = context.config
        self.git = context.git

    @abstractmethod
    def run(self) -> PhaseResult:
        """Execute the phase and return a result."""
        pass

    def _invoke(
        self,
        prompt: str,
        resume_session_id: str | None = None,
        system_prompt: str = "",
    ) -> AgentResult:
        """Run the configured agent for this phase."""
        agent = self.context.agent
        self.context.log(
            "agent_invocation",
            data={
                "agent": agent.name,
                "mode": self.mode,
                "resume_session_id": resume_session_id,
                "prompt_preview": prompt[:500] + "..." if len(prompt) > 500 else prompt,
            },
        )
        invocation = AgentInvocation(
            prompt=prompt,
            system_prompt=system_prompt,
            mode=self.mode,
            cwd=self.context.repo_path,
            on_event=self.context.on_event,
            resume_session_id=resume_session_id,
            model=self.config.model_for(self.mode),
        )
        result = agent.invoke(invocation)
        self.context.log("agent_result", data={"session_id": result.session_id})
        return result

    def _commit_message(self, marker: Marker, diff: str) -> str:
        return generate_commit_message(
            self.context.agent,
            marker,
            diff,
            self.context.repo_path,
            template=self.config.commit_prompt,
            model=self.config.model_for("commit"),
        )

    def _commit_all(self, marker: Marker, empty_message: str | None = None) -> str | None:
        """
        Commit every working tree change with an agent-written message.

        With no changes, makes an empty commit when ``empty_message`` is
        given so the workflow still advances, otherwise commits nothing.
        """
        if not self.git.has_uncommitted_changes():
            if empty_message is None:
                return None
            sha = self.git.empty_commit(empty_message)
            self.context.record_commit(empty_message, sha)
            return sha

        message = self._commit_message(marker, self.git.get_working_diff())
        sha = self.git.atomic_commit("all", message)
        self.context.record_commit(message, sha)
        return sha

    def _remove_plan_file(self) -> str:
        """Delete the plan file and commit the removal."""
        message = f"{Marker.CLEANUP.value} cleanup: remove {self.config.file}"
        if self.context.plan_exists():
            self.context.plan_path.unlink()
            sha = self.git.atomic_commit("all", message)
        else:
            sha = self.git.empty_commit(message)
        self.context.record_commit(message, sha)
        return sha


class CommitFeedbackPhase(Phase):
    """Split uncommitted edits into categorized commits."""

    name = "commit-feedback"
    marker = Marker.HUMAN
    mode = "commit"

    def run(self) -> PhaseResult:
        start = len(self.context.commits)
        self.git.reset_index()

        diff = self.git.get_working_diff()
        classified = classify_diff(diff, self.config.file)

        by_marker = dict(classified.non_empty())
        for marker in FEEDBACK_COMMIT_ORDER:
            patch = by_marker.get(marker)
            if not patch:
                continue
            try:
                self.git.stage_by_patch(patch)
            except GitOperationError as e:
                # Leave these hunks for the catch-all commit below
                self.git.reset_index()
                print(
                    f"[gtd] Could not stage {marker_label(marker)} changes separately: {e}",
                    file=sys.stderr,
                )
                continue
            message = self._commit_message(marker, patch)
            sha = self.git.commit_staged(message)
            self.context.record_commit(message, sha)

        # Binary or mode-only changes never show up as text hunks
        if self.git.has_uncommitted_changes():
            leftover = self.git.get_working_diff()
            marker = classify_prefix(leftover, self.config.file)
            message = self._commit_message(marker, leftover)
            sha = self.git.atomic_commit("all", message)
            self.context.record_commit(message, sha)

        commits = self.context.commits[start:]
        return PhaseResult(
            success=True,
            message=f"Committed feedback in {len(commits)} commit(s).",
            commits=commits,
        )


class ExplorePhase(Phase):
    """Explore approaches for a freshly seeded plan."""

    name = "explore"
    marker = Marker.EXPLORE
    mode = "explore"

    def run(self) -> PhaseResult:
        seed = self.context.read_plan()

        diff = self.git.get_diff()
        if not diff.strip():
            diff = self.git.show("HEAD")

        diff_section = f"### User Edits (diff)\n\n```diff\n{diff}\n```" if diff.strip() else ""
        prompt = interpolate(EXPLORE_PROMPT, {"seed": seed, "diff": diff_section})

        self._invoke(prompt)
        sha = self._commit_all(
            Marker.EXPLORE, empty_message=f"{Marker.EXPLORE.value} explore: no changes"
        )
        return PhaseResult(success=True, message="Exploration committed.", commits=[sha])


class PlanPhase(Phase):
    """Create or update the plan file from the latest feedback."""

    name = "plan"
    marker = Marker.PLAN
    mode = "plan"

    def _build_prompt(self, diff: str, existing_plan: str) -> tuple[str, list]:
        plan_path = self.context.plan_path
        diff_section = (
            f"### Git Diff\n\n```diff\n{diff}\n```" if diff.strip() else "No diff available."
        )
        if detect_state(existing_plan) != "empty":
            plan_section = (
                f"### Current Plan File ({plan_path})\n\n```markdown\n{existing_plan}\n```"
            )
        else:
            plan_section = f"No plan file exists yet. Create {plan_path} from scratch."

        prompt = interpolate(
            PLAN_PROMPT,
            {"plan_file": str(plan_path), "diff": diff_section, "plan": plan_section},
        )

        todos = find_newly_added_todos(diff, self.config.file)
        if todos:
            listing = "\n".join(f"- `{t.file}`: `{t.line_content.strip()}`" for t in todos)
            prompt += interpolate(TODO_COMMENTS_BLOCK, {"todos": listing})
        return prompt, todos

    def run(self) -> PhaseResult:
        diff = self.git.get_diff()
        if not diff.strip():
            diff = self.git.show("HEAD")

        prompt, todos = self._build_prompt(diff, self.context.read_plan())

        # The removals land in the plan commit together with the new items
        if todos:
            removed = remove_todo_lines(todos, self.context.repo_path)
            self.context.log("todo_comments_removed", data={"count": removed})

        result = self._invoke(prompt, resume_session_id=self.context.sessions.read())

        sha = self._commit_all(Marker.PLAN, empty_message=f"{Marker.PLAN.value} plan: no changes")

        if result.session_id:
            self.context.sessions.write(result.session_id)

        return PhaseResult(
            success=True,
            message="Plan committed.",
            commits=[sha] if sha else [],
            session_id=result.session_id,
        )


class BuildPhase(Phase):
    """Implement packages one at a time, testing each before committing."""

    name = "build"
    marker = Marker.BUILD
    mode = "build"

    def _learnings_section(self, content: str) -> str:
        learnings = extract_learnings(content)
        return f"### Learnings\n\n{learnings}" if learnings else "No learnings yet."

    def _build_prompt(
        self, package: Package, content: str, completed: list[str], test_output: str = ""
    ) -> str:
        return interpolate(
            BUILD_PROMPT,
            {
                "item": format_package_prompt(package, self.context.plan_path),
                "learnings": self._learnings_section(content),
                "completed": (
                    "\n".join(completed) if completed else "No previous packages completed."
                ),
                "test_output": test_output,
            },
        )

    def _run_tests(self) -> tuple[bool, str]:
        success, stdout, stderr = run_command(self.context.repo_path, self.config.test_cmd)
        self.context.log(
            "tests_run",
            data={"command": self.config.test_cmd, "passed": success},
            output=stdout + stderr,
        )
        return success, stdout + stderr

    def _test_until_green(
        self, package: Package, session_id: str | None, completed: list[str]
    ) -> bool:
        """Run tests, asking the agent to fix failures up to ``test_retries`` times."""
        retries = self.config.test_retries
        for attempt in range(retries + 1):
            passed, output = self._run_tests()
            if passed:
                return True
            if attempt >= retries:
                return False

            print(
                f"[gtd] Tests failed for '{package.title}' (attempt {attempt + 1}/{retries + 1})",
                file=sys.stderr,
            )
            if session_id:
                # The resumed session already has the full context
                prompt = interpolate(TEST_FIX_PROMPT, {"output": output})
                result = self._invoke(prompt, resume_session_id=session_id)
                session_id = result.session_id or session_id
            else:
                content = self.context.read_plan()
                current = next_unchecked_package(content) or package
                failure = interpolate(
                    TEST_FAILURE_SECTION, {"attempt": str(attempt + 1), "output": output}
                )
                self._invoke(self._build_prompt(current, content, completed, failure))
        return False

    def _ensure_checked_off(self, package: Package) -> None:
        """Tick the package's items if the agent left them unchecked."""
        content = self.context.read_plan()
        for current in parse_packages(content):
            if current.title == package.title and current.unchecked_items:
                self.context.plan_path.write_text(
                    check_off_package(content, current),
                    encoding="utf-8",
                    errors="surrogateescape",
                )
                return

    def run(self) -> PhaseResult:
        if not self.context.plan_exists():
            error = f"Plan file {self.config.file} not found. Nothing to build."
            print(f"[gtd] {error}", file=sys.stderr)
            return PhaseResult(success=False, error=error)

        if not has_unchecked_items(self.context.read_plan()):
            return PhaseResult(
                success=True, message=f"No unchecked items in {self.config.file}. Nothing to build."
            )

        commits: list[str] = []
        completed: list[str] = []
        session_id = self.context.sessions.read()

        while True:
            content = self.context.read_plan()
            package = next_unchecked_package(content)
            if package is None:
                break

            self.context.notifier.on_phase_started(f"build: {package.title}")
            result = self._invoke(
                self._build_prompt(package, content, completed), resume_session_id=session_id
            )
            # Only the first package continues the planning conversation
            session_id = None

            if self.config.test_cmd.strip():
                if not self._test_until_green(package, result.session_id, completed):
                    error = f"Tests failed after {self.config.test_retries} retries. Stopping."
                    print(f"[gtd] {error}", file=sys.stderr)
                    return PhaseResult(success=False, error=error, commits=commits)

            self._ensure_checked_off(package)
            sha = self._commit_all(Marker.BUILD)
            if sha:
                commits.append(sha)
            if result.session_id:
                self.context.sessions.write(result.session_id)
            completed.append(f"- {package.title}: implemented and tests passing")

        # Next plan starts a fresh conversation
        self.context.sessions.delete()
        return PhaseResult(success=True, message="All items built.", commits=commits)


class LearnPhase(Phase):
    """Persist the plan's learnings, then retire the plan file."""

    name = "learn"
    marker = Marker.LEARN
    mode = "learn"

    def run(self) -> PhaseResult:
        if not self.context.plan_exists():
            error = f"Plan file {self.config.file} not found. Nothing to learn from."
            print(f"[gtd] {error}", file=sys.stderr)
            return PhaseResult(success=False, error=error)

        content = self.context.read_plan()
        learnings = extract_learnings(content) if has_learnings_section(content) else ""
        commits = []

        if learnings:
            self._invoke(interpolate(LEARN_PROMPT, {"learnings": learnings}))
            sha = self._commit_all(Marker.LEARN)
            if sha:
                commits.append(sha)
            message = "Learnings persisted to AGENTS.md and committed."
        else:
            message = "No learnings to persist. Cleaned up."

        commits.append(self._remove_plan_file())
        return PhaseResult(success=True, message=message, commits=commits)


class CleanupPhase(Phase):
    """Remove the finished plan file."""

    name = "cleanup"
    marker = Marker.CLEANUP

    def run(self) -> PhaseResult:
        sha = self._remove_plan_file()
        return PhaseResult(success=True, message=f"Removed {self.config.file}.", commits=[sha])


class IdlePhase(Phase):
    """Nothing to advance."""

    name = "idle"

    def run(self) -> PhaseResult:
        self.context.notifier.on_idle(IDLE_MESSAGE)
        return PhaseResult(success=True, message=IDLE_MESSAGE)


def run_guarded(phase: Phase) -> PhaseResult:
    """
    Run a phase, turning guard aborts into a normal (failed) result.

    Inactivity timeouts and interactive tool calls are expected in headless
    runs; no partial commit is made and the run ends cleanly. Every other
    error propagates.
    """
    try:
        return phase.run()
    except AgentError as e:
        if not e.is_recoverable:
            raise
        if e.reason is AgentErrorReason.INACTIVITY_TIMEOUT:
            print("[gtd] Agent timed out (no activity)", file=sys.stderr)
        else:
            print("[gtd] Agent requested user input, aborting", file=sys.stderr)
        phase.context.log("agent_error", data={"reason": e.reason.value, "error": str(e)})
        phase.context.notifier.on_agent_aborted(phase.name, e)
        return PhaseResult(success=False, error=str(e), aborted=True)


# Phase class for every inferred step
PHASES: dict[Step, type[Phase]] = {
    Step.COMMIT_FEEDBACK: CommitFeedbackPhase,
    Step.EXPLORE: ExplorePhase,
    Step.PLAN: PlanPhase,
    Step.BUILD: BuildPhase,
    Step.LEARN: LearnPhase,
    Step.CLEANUP: CleanupPhase,
    Step.IDLE: IdlePhase,
}

PHASE_NAMES = [cls.name for cls in PHASES.values()]
