"""Workflow state machine: repository observations in, next step out."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gtd.prefixes import Marker, marker_label


class Step(str, Enum):
    """Actions the workflow can take next."""

    COMMIT_FEEDBACK = "commit-feedback"
    EXPLORE = "explore"
    PLAN = "plan"
    BUILD = "build"
    LEARN = "learn"
    CLEANUP = "cleanup"
    IDLE = "idle"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class InferStepInput:
    """Observation record rebuilt from git and the plan file on every run."""

    has_uncommitted_changes: bool = False
    last_commit_prefix: Marker | None = None
    has_unchecked_items: bool = False
    only_learnings_modified: bool = False
    todo_file_is_new: bool = False
    # Nearest non-HUMAN/FIX marker before a HUMAN commit
    prev_phase_prefix: Marker | None = None


def _build_or_learn(state: InferStepInput) -> Step:
    return Step.BUILD if state.has_unchecked_items else Step.LEARN


def _resume_after_feedback(state: InferStepInput) -> Step:
    """Pick up the phase that was running before the human stepped in."""
    prev = state.prev_phase_prefix
    if prev is Marker.BUILD:
        return _build_or_learn(state)
    if prev is Marker.LEARN:
        return Step.LEARN
    if prev is Marker.EXPLORE:
        return Step.EXPLORE
    return Step.PLAN


def infer_step(state: InferStepInput) -> Step:
    """
    Decide the next workflow step.

    Pure and total: every marker, plus no marker at all, has a branch.
    Uncommitted changes always win so in-progress edits get classified
    and committed before any phase runs.
    """
    if state.has_uncommitted_changes:
        return Step.COMMIT_FEEDBACK

    prefix = state.last_commit_prefix

    if prefix is Marker.SEED:
        return Step.EXPLORE
    if prefix is Marker.EXPLORE:
        return Step.PLAN
    if prefix in (Marker.HUMAN, Marker.FEEDBACK):
        if state.only_learnings_modified:
            return Step.LEARN
        return _resume_after_feedback(state)
    if prefix is Marker.PLAN:
        return Step.BUILD
    if prefix in (Marker.BUILD, Marker.FIX):
        if state.todo_file_is_new:
            return Step.PLAN
        return _build_or_learn(state)
    if prefix is Marker.LEARN:
        return Step.CLEANUP

    # CLEANUP or no recognized marker
    return Step.PLAN if state.todo_file_is_new else Step.IDLE


def describe_reason(state: InferStepInput, step: Step) -> str:
    """Explain in one line why ``step`` was chosen."""
    if state.has_uncommitted_changes:
        return "Uncommitted changes detected, committing feedback first."

    prefix = state.last_commit_prefix
    last = marker_label(prefix)

    if prefix in (Marker.BUILD, Marker.FIX):
        if state.todo_file_is_new:
            detail = " with a new todo file"
        elif state.has_unchecked_items:
            detail = " with unchecked items"
        else:
            detail = " with all items checked"
        return f"Last commit was a {last} step{detail}, so proceeding to {step}."
    if prefix in (Marker.HUMAN, Marker.FEEDBACK):
        if state.only_learnings_modified:
            return f"Last commit was {last} (learnings only), so proceeding to {step}."
        if state.prev_phase_prefix is not None:
            prev = marker_label(state.prev_phase_prefix)
            return f"Last commit was {last} during {prev}, so proceeding to {step}."
        return f"Last commit was {last}, so proceeding to {step}."
    if prefix is None:
        if state.todo_file_is_new:
            return f"New todo file detected, so proceeding to {step}."
        return f"No recognized commit prefix. Next step: {step}."
    return f"Last commit was a {last} step, so proceeding to {step}."
