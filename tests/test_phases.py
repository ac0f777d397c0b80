"""Tests for workflow phases against real repositories."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gtd.agents.mock import MockAgent
from gtd.config import GtdConfig
from gtd.context import WorkflowContext
from gtd.errors import AgentError, AgentErrorReason, GitOperationError
from gtd.git import GitManager
from gtd.infer_step import Step
from gtd.notifications import Notifier
from gtd.phases import (
    IDLE_MESSAGE,
    PHASE_NAMES,
    PHASES,
    BuildPhase,
    CleanupPhase,
    CommitFeedbackPhase,
    ExplorePhase,
    IdlePhase,
    LearnPhase,
    PlanPhase,
    run_guarded,
)
from gtd.state import InMemorySessionStore

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("git") is None, reason="git not installed"),
]

COMMIT_KEY = "Summarize this diff"
EXPLORE_KEY = "explore a new idea"
PLAN_KEY = "You maintain the project plan"
BUILD_KEY = "Implement the next package"
TEST_FIX_KEY = "Tests failed:"
LEARN_KEY = "Persist what was learned"

PLAN = """# Plan

## Action Items

### Setup
- [ ] create module
  with details

### Polish
- [ ] write docs

## Learnings
"""

FINISHED_PLAN = """# Plan

## Action Items

### Setup
- [x] create module

## Learnings

- keep modules small
"""


def init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init", "-q"], cwd=path, check=True)
    subprocess.run(["git", "config", "user.name", "GtdTest"], cwd=path, check=True)
    subprocess.run(["git", "config", "user.email", "gtd@test.local"], cwd=path, check=True)
    subprocess.run(["git", "config", "commit.gpgsign", "false"], cwd=path, check=True)
    return path


def commit(path: Path, message: str) -> None:
    subprocess.run(["git", "add", "-A"], cwd=path, check=True)
    subprocess.run(["git", "commit", "-q", "--allow-empty", "-m", message], cwd=path, check=True)


def subjects(path: Path, count: int) -> list[str]:
    """Last ``count`` commit subjects, oldest first."""
    result = subprocess.run(
        ["git", "log", f"-{count}", "--pretty=%s"],
        cwd=path,
        check=True,
        capture_output=True,
        text=True,
    )
    return list(reversed(result.stdout.strip().split("\n")))


def is_clean(path: Path) -> bool:
    result = subprocess.run(
        ["git", "status", "--porcelain"], cwd=path, check=True, capture_output=True, text=True
    )
    return result.stdout.strip() == ""


def write_file(relative: str, text: str):
    """Agent action that writes a file in the invocation's working directory."""

    def action(invocation):
        (invocation.cwd / relative).write_text(text)

    return action


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    path = init_repo(tmp_path / "repo")
    (path / "README.md").write_text("# test\n")
    commit(path, "init")
    return path


def make_context(
    repo: Path,
    agent: MockAgent,
    sessions: InMemorySessionStore | None = None,
    notifier: Notifier | None = None,
    **config,
) -> WorkflowContext:
    return WorkflowContext(
        repo_path=repo,
        config=GtdConfig(**config),
        git=GitManager(repo),
        agent=agent,
        sessions=sessions or InMemorySessionStore(),
        notifier=notifier or Notifier([]),
    )


class TestPhaseRegistry:
    """Tests for the step to phase mapping."""

    def test_every_step_has_a_phase(self):
        """Test that dispatch is total over steps."""
        assert set(PHASES) == set(Step)

    def test_names_match_steps(self):
        """Test that phase names are the step values."""
        for step, phase_class in PHASES.items():
            assert phase_class.name == step.value
        assert len(PHASE_NAMES) == len(Step)


class TestCommitFeedbackPhase:
    """Tests for CommitFeedbackPhase."""

    def test_splits_changes_by_category(self, repo: Path):
        """Test fix, human and feedback edits land in separate commits, in order."""
        (repo / "src.py").write_text("a = 1\n")
        (repo / "notes.py").write_text("b = 1\n")
        (repo / "TODO.md").write_text(PLAN)
        commit(repo, "🤖 plan")

        (repo / "src.py").write_text("a = 2\n")
        (repo / "notes.py").write_text("b = 1\n# TODO: refactor\n")
        (repo / "TODO.md").write_text(PLAN + "> please split setup\n")

        agent = MockAgent(responses={COMMIT_KEY: "apply edits"})
        result = CommitFeedbackPhase(make_context(repo, agent)).run()

        assert result.success is True
        assert len(result.commits) == 3
        assert subjects(repo, 3) == ["👷 apply edits", "🤦 apply edits", "💬 apply edits"]
        assert is_clean(repo)

    def test_new_plan_is_a_seed(self, repo: Path):
        """Test that a brand new plan file is committed as a seed."""
        (repo / "TODO.md").write_text("# Idea\n\nMake it faster.\n")

        agent = MockAgent(responses={COMMIT_KEY: "seed idea"})
        result = CommitFeedbackPhase(make_context(repo, agent)).run()

        assert len(result.commits) == 1
        assert subjects(repo, 1) == ["🌱 seed idea"]
        assert is_clean(repo)

    def test_staging_failure_falls_back_to_one_commit(self, repo: Path, capsys):
        """Test that unstageable hunks are committed together afterwards."""
        (repo / "src.py").write_text("a = 1\n")
        commit(repo, "🔨 build")
        (repo / "src.py").write_text("a = 2\n")

        agent = MockAgent(responses={COMMIT_KEY: "tweak"})
        context = make_context(repo, agent)
        with patch.object(
            context.git, "stage_by_patch", side_effect=GitOperationError("apply", "corrupt")
        ):
            result = CommitFeedbackPhase(context).run()

        assert len(result.commits) == 1
        assert subjects(repo, 1) == ["👷 tweak"]
        assert is_clean(repo)
        assert "Could not stage fix changes separately" in capsys.readouterr().err

    def test_commit_message_fallback(self, repo: Path):
        """Test that a failing agent still yields a tagged commit."""
        (repo / "README.md").write_text("# changed\n")

        agent = MockAgent(responses={COMMIT_KEY: AgentError("agent down")})
        CommitFeedbackPhase(make_context(repo, agent)).run()

        assert subjects(repo, 1) == ["👷 update"]

    def test_non_utf8_changes_commit_unchanged(self, repo: Path):
        """Test that Latin-1 edits are split and committed byte for byte."""
        (repo / "a.txt").write_bytes(b"caf\xe9\n")
        commit(repo, "🔨 build")
        (repo / "a.txt").write_bytes(b"caf\xe9 // TODO: x\n")

        agent = MockAgent(responses={COMMIT_KEY: "note"})
        result = CommitFeedbackPhase(make_context(repo, agent)).run()

        assert result.success is True
        assert subjects(repo, 1) == ["🤦 note"]
        assert is_clean(repo)
        committed = subprocess.run(
            ["git", "show", "HEAD:a.txt"], cwd=repo, check=True, capture_output=True
        )
        assert committed.stdout == b"caf\xe9 // TODO: x\n"



class TestExplorePhase:
    """Tests for ExplorePhase."""

    def test_explores_seed(self, repo: Path):
        """Test that the seed is sent to the agent and its notes committed."""
        (repo / "TODO.md").write_text("# Idea\n\nMake it faster.\n")
        commit(repo, "🌱 seed idea")

        agent = MockAgent(
            responses={COMMIT_KEY: "add exploration notes"},
            actions={
                EXPLORE_KEY: write_file(
                    "TODO.md", "# Idea\n\nMake it faster.\n\n## Exploration\n\nCache it.\n"
                )
            },
        )
        result = ExplorePhase(make_context(repo, agent)).run()

        assert result.success is True
        prompts = agent.prompts_containing(EXPLORE_KEY)
        assert len(prompts) == 1
        assert "Make it faster." in prompts[0]
        assert subjects(repo, 1) == ["🧭 add exploration notes"]

    def test_no_changes_still_advances(self, repo: Path):
        """Test the empty commit when the agent changes nothing."""
        (repo / "TODO.md").write_text("# Idea\n")
        commit(repo, "🌱 seed idea")

        ExplorePhase(make_context(repo, MockAgent())).run()

        assert subjects(repo, 1) == ["🧭 explore: no changes"]


class TestPlanPhase:
    """Tests for PlanPhase."""

    def test_writes_plan_and_stores_session(self, repo: Path):
        """Test plan creation and session persistence."""
        (repo / "TODO.md").write_text("# Idea\n")
        commit(repo, "🧭 explore")

        sessions = InMemorySessionStore()
        agent = MockAgent(
            responses={COMMIT_KEY: "plan the work"},
            actions={PLAN_KEY: write_file("TODO.md", PLAN)},
        )
        result = PlanPhase(make_context(repo, agent, sessions=sessions)).run()

        assert result.success is True
        assert result.session_id == "mock-session-123"
        assert sessions.read() == "mock-session-123"
        assert subjects(repo, 1) == ["🤖 plan the work"]
        assert (repo / "TODO.md").read_text() == PLAN

    def test_resumes_stored_session(self, repo: Path):
        """Test that planning continues the previous conversation."""
        (repo / "TODO.md").write_text(PLAN + "> more detail please\n")
        commit(repo, "💬 feedback")

        agent = MockAgent(actions={PLAN_KEY: write_file("TODO.md", PLAN)})
        context = make_context(repo, agent, sessions=InMemorySessionStore("prev-session"))
        PlanPhase(context).run()

        plan_calls = [c for c in agent.call_history if PLAN_KEY in c.prompt]
        assert plan_calls[0].resume_session_id == "prev-session"
        assert plan_calls[0].mode == "plan"
        assert "Current Plan File" in plan_calls[0].prompt
        assert "more detail please" in plan_calls[0].prompt

    def test_removes_new_todo_comments(self, repo: Path):
        """Test that new TODO comments become plan input and are removed."""
        (repo / "main.py").write_text("x = 1\n")
        commit(repo, "🔨 build")
        (repo / "main.py").write_text("x = 1\n# TODO: add logging\n")
        commit(repo, "🤦 todo")

        agent = MockAgent(actions={PLAN_KEY: write_file("TODO.md", PLAN)})
        PlanPhase(make_context(repo, agent)).run()

        prompt = agent.prompts_containing(PLAN_KEY)[0]
        assert "Newly Added TODO Comments" in prompt
        assert "# TODO: add logging" in prompt
        assert (repo / "main.py").read_text() == "x = 1\n"
        assert is_clean(repo)

    def test_no_changes_still_advances(self, repo: Path):
        """Test the empty commit when the plan is unchanged."""
        (repo / "TODO.md").write_text(PLAN)
        commit(repo, "💬 feedback")

        PlanPhase(make_context(repo, MockAgent())).run()

        assert subjects(repo, 1) == ["🤖 plan: no changes"]


class TestBuildPhase:
    """Tests for BuildPhase."""

    @pytest.fixture
    def planned(self, repo: Path) -> Path:
        (repo / "TODO.md").write_text(PLAN)
        commit(repo, "🤖 plan")
        return repo

    @staticmethod
    def numbered_files():
        count = {"n": 0}

        def action(invocation):
            count["n"] += 1
            (invocation.cwd / f"built-{count['n']}.txt").write_text("done\n")

        return action

    def test_builds_every_package(self, planned: Path):
        """Test one commit per package with automatic check-off."""
        sessions = InMemorySessionStore("plan-session")
        agent = MockAgent(
            responses={COMMIT_KEY: "implement package"},
            actions={BUILD_KEY: self.numbered_files()},
        )
        result = BuildPhase(make_context(planned, agent, sessions=sessions, test_cmd="true")).run()

        assert result.success is True
        assert len(result.commits) == 2
        assert subjects(planned, 2) == ["🔨 implement package", "🔨 implement package"]
        plan = (planned / "TODO.md").read_text()
        assert "- [ ]" not in plan
        assert "- [x] create module" in plan
        assert "- [x] write docs" in plan
        assert sessions.read() is None

        build_calls = [c for c in agent.call_history if BUILD_KEY in c.prompt]
        assert [c.resume_session_id for c in build_calls] == ["plan-session", None]
        assert "### Setup" in build_calls[0].prompt
        assert "with details" in build_calls[0].prompt
        assert "### Polish" in build_calls[1].prompt
        assert "- Setup: implemented and tests passing" in build_calls[1].prompt

    def test_failing_tests_resume_session(self, planned: Path, capsys):
        """Test the fix loop through the resumed session."""
        agent = MockAgent(actions={BUILD_KEY: self.numbered_files()})
        context = make_context(planned, agent, test_cmd="false", test_retries=2)

        result = BuildPhase(context).run()

        assert result.success is False
        assert result.error == "Tests failed after 2 retries. Stopping."
        fix_calls = [c for c in agent.call_history if c.prompt.startswith(TEST_FIX_KEY)]
        assert len(fix_calls) == 2
        assert all(c.resume_session_id == "mock-session-123" for c in fix_calls)
        assert subjects(planned, 1) == ["🤖 plan"]
        assert "Tests failed for 'Setup' (attempt 1/3)" in capsys.readouterr().err

    def test_failing_tests_without_session(self, planned: Path):
        """Test the fix loop with a full prompt when there is no session."""
        agent = MockAgent(session_id=None)
        context = make_context(planned, agent, test_cmd="false", test_retries=1)

        BuildPhase(context).run()

        retries = agent.prompts_containing("### Test Failure (attempt 1)")
        assert len(retries) == 1
        assert BUILD_KEY in retries[0]

    def test_tests_fixed_on_retry(self, planned: Path):
        """Test that a fix turning tests green continues the build."""
        agent = MockAgent(
            actions={
                BUILD_KEY: self.numbered_files(),
                TEST_FIX_KEY: write_file("fixed.txt", "ok\n"),
            }
        )
        context = make_context(planned, agent, test_cmd="test -f fixed.txt", test_retries=3)

        result = BuildPhase(context).run()

        assert result.success is True
        assert len(agent.prompts_containing(TEST_FIX_KEY)) == 1
        assert is_clean(planned)

    def test_without_test_command(self, planned: Path):
        """Test that an empty test command skips testing."""
        agent = MockAgent(actions={BUILD_KEY: self.numbered_files()})

        result = BuildPhase(make_context(planned, agent)).run()

        assert result.success is True
        assert agent.prompts_containing(TEST_FIX_KEY) == []

    def test_missing_plan(self, repo: Path):
        """Test that building without a plan fails."""
        result = BuildPhase(make_context(repo, MockAgent())).run()

        assert result.success is False
        assert "not found" in result.error

    def test_nothing_unchecked(self, repo: Path):
        """Test that a finished plan builds nothing."""
        (repo / "TODO.md").write_text(FINISHED_PLAN)
        commit(repo, "🔨 build")
        agent = MockAgent()

        result = BuildPhase(make_context(repo, agent)).run()

        assert result.success is True
        assert "No unchecked items" in result.message
        assert agent.call_history == []


class TestLearnPhase:
    """Tests for LearnPhase."""

    def test_persists_learnings_then_cleans_up(self, repo: Path):
        """Test the learn commit followed by plan removal."""
        (repo / "TODO.md").write_text(FINISHED_PLAN)
        commit(repo, "🔨 build")

        agent = MockAgent(
            responses={COMMIT_KEY: "record learnings"},
            actions={LEARN_KEY: write_file("AGENTS.md", "- keep modules small\n")},
        )
        result = LearnPhase(make_context(repo, agent)).run()

        assert result.success is True
        assert len(result.commits) == 2
        assert subjects(repo, 2) == ["🎓 record learnings", "🧹 cleanup: remove TODO.md"]
        assert "keep modules small" in agent.prompts_containing(LEARN_KEY)[0]
        assert not (repo / "TODO.md").exists()
        assert (repo / "AGENTS.md").exists()

    def test_without_learnings(self, repo: Path):
        """Test that an empty learnings section skips the agent."""
        (repo / "TODO.md").write_text("# Plan\n\n## Learnings\n\n")
        commit(repo, "🔨 build")
        agent = MockAgent()

        result = LearnPhase(make_context(repo, agent)).run()

        assert result.message == "No learnings to persist. Cleaned up."
        assert agent.call_history == []
        assert subjects(repo, 1) == ["🧹 cleanup: remove TODO.md"]

    def test_missing_plan(self, repo: Path):
        """Test that learning without a plan fails."""
        result = LearnPhase(make_context(repo, MockAgent())).run()
        assert result.success is False


class TestCleanupPhase:
    """Tests for CleanupPhase."""

    def test_removes_plan(self, repo: Path):
        """Test that the plan file is deleted and committed."""
        (repo / "TODO.md").write_text(FINISHED_PLAN)
        commit(repo, "🎓 learn")

        result = CleanupPhase(make_context(repo, MockAgent())).run()

        assert result.success is True
        assert not (repo / "TODO.md").exists()
        assert subjects(repo, 1) == ["🧹 cleanup: remove TODO.md"]
        assert is_clean(repo)

    def test_missing_plan_still_commits(self, repo: Path):
        """Test the empty commit when the plan is already gone."""
        commit(repo, "🎓 learn")

        CleanupPhase(make_context(repo, MockAgent())).run()

        assert subjects(repo, 1) == ["🧹 cleanup: remove TODO.md"]


class TestIdlePhase:
    """Tests for IdlePhase."""

    def test_reports_message(self, repo: Path):
        """Test the idle message and that nothing is committed."""
        notifier = MagicMock(spec=Notifier)
        result = IdlePhase(make_context(repo, MockAgent(), notifier=notifier)).run()

        assert result.success is True
        assert result.message == IDLE_MESSAGE
        notifier.on_idle.assert_called_once_with(IDLE_MESSAGE)
        assert subjects(repo, 1) == ["init"]


class TestRunGuarded:
    """Tests for run_guarded."""

    def test_guard_abort_becomes_result(self, repo: Path, capsys):
        """Test that a timeout ends the run without a commit."""
        (repo / "TODO.md").write_text("# Idea\n")
        commit(repo, "🌱 seed")
        error = AgentError("silent", reason=AgentErrorReason.INACTIVITY_TIMEOUT)
        notifier = MagicMock(spec=Notifier)
        context = make_context(repo, MockAgent(responses={EXPLORE_KEY: error}), notifier=notifier)

        result = run_guarded(ExplorePhase(context))

        assert result.success is False
        assert result.aborted is True
        assert result.error == "silent"
        assert subjects(repo, 1) == ["🌱 seed"]
        assert "Agent timed out (no activity)" in capsys.readouterr().err
        notifier.on_agent_aborted.assert_called_once_with("explore", error)

    def test_input_request_abort(self, repo: Path, capsys):
        """Test the message for an interactive tool call."""
        (repo / "TODO.md").write_text("# Idea\n")
        commit(repo, "🌱 seed")
        error = AgentError("asked", reason=AgentErrorReason.INPUT_REQUESTED)
        context = make_context(repo, MockAgent(responses={EXPLORE_KEY: error}))

        result = run_guarded(ExplorePhase(context))

        assert result.aborted is True
        assert "Agent requested user input, aborting" in capsys.readouterr().err

    def test_other_errors_propagate(self, repo: Path):
        """Test that ordinary agent failures are not swallowed."""
        (repo / "TODO.md").write_text("# Idea\n")
        commit(repo, "🌱 seed")
        context = make_context(repo, MockAgent(responses={EXPLORE_KEY: AgentError("crash")}))

        with pytest.raises(AgentError, match="crash"):
            run_guarded(ExplorePhase(context))
