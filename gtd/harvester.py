"""Assemble the workflow observation record from git and the plan file."""

from __future__ import annotations

from pathlib import Path

from gtd.diff_classifier import parse_unified_diff
from gtd.errors import GitOperationError
from gtd.git import GitManager
from gtd.infer_step import InferStepInput
from gtd.learnings import is_only_learnings_modified
from gtd.plan import has_unchecked_items
from gtd.prefixes import Marker, parse_commit_prefix

# How many commits before a HUMAN commit are searched for the interrupted phase
PREV_PHASE_SCAN_DEPTH = 20


def read_plan(repo_path: Path, plan_file: str) -> str:
    """Plan file contents, "" when it does not exist."""
    path = repo_path / plan_file
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def _last_commit_touches_only(git: GitManager, plan_file: str) -> bool:
    files = parse_unified_diff(git.show_commit_diff("HEAD"))
    return bool(files) and all(f.path == plan_file for f in files)


def _only_learnings_modified(git: GitManager, plan_file: str) -> bool:
    if not _last_commit_touches_only(git, plan_file):
        return False
    diff = git.show_commit_diff("HEAD")
    previous_plan = git.show(f"HEAD~1:{plan_file}")
    return is_only_learnings_modified(diff, previous_plan)


def _todo_file_is_new(git: GitManager, plan_file: str) -> bool:
    return git.file_exists_at("HEAD", plan_file) and not git.file_exists_at(
        "HEAD~1", plan_file
    )


def _prev_phase_prefix(git: GitManager) -> Marker | None:
    subjects = git.get_recent_commit_messages(PREV_PHASE_SCAN_DEPTH + 1)
    # The first subject is the HUMAN commit itself
    for subject in subjects[1:]:
        marker = parse_commit_prefix(subject)
        if marker is not None and marker not in (Marker.HUMAN, Marker.FIX):
            return marker
    return None


def gather_state(git: GitManager, plan_file: str) -> InferStepInput:
    """
    Build an InferStepInput for the repository managed by ``git``.

    Every git query degrades to a safe default so a repository with no
    commits (or only one) is handled without errors.
    """
    try:
        uncommitted = git.has_uncommitted_changes()
    except GitOperationError:
        uncommitted = False

    last_prefix = parse_commit_prefix(git.get_last_commit_message())
    content = read_plan(git.repo_path, plan_file)

    only_learnings = False
    if last_prefix in (Marker.HUMAN, Marker.FEEDBACK):
        only_learnings = _only_learnings_modified(git, plan_file)

    todo_is_new = False
    if not uncommitted:
        todo_is_new = _todo_file_is_new(git, plan_file)

    prev_prefix = None
    if last_prefix is Marker.HUMAN:
        prev_prefix = _prev_phase_prefix(git)

    return InferStepInput(
        has_uncommitted_changes=uncommitted,
        last_commit_prefix=last_prefix,
        has_unchecked_items=has_unchecked_items(content),
        only_learnings_modified=only_learnings,
        todo_file_is_new=todo_is_new,
        prev_phase_prefix=prev_prefix,
    )
